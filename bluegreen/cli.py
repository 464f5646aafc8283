"""CLI entry point: bluegreen --tag 1.4.0-ab12cd3 (or --image registry/service:tag)"""

import argparse
import json
import logging
import signal
import sys
from typing import List, Optional

import httpx
from pydantic import ValidationError

from bluegreen.deployment import (
    ConsoleApprovalGate,
    DeploymentOrchestrator,
    HealthProbe,
    ImageReference,
    InMemoryPlatform,
    InvalidPlanError,
    KubectlPlatform,
    Outcome,
)
from bluegreen.logging_config import LogFormat, LoggingConfig, LogLevel, configure_logging
from bluegreen.settings import Settings, get_settings

logger = logging.getLogger(__name__)

EXIT_CODES = {
    Outcome.PROMOTED: 0,
    Outcome.ROLLED_BACK: 1,
    Outcome.ABORTED: 3,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bluegreen",
        description="Blue/green release of a single service with approval gates",
    )
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument(
        "--tag",
        help="Image tag to release (version + short commit hash)"
    )
    source.add_argument(
        "--image",
        help="Full image reference registry/service:tag"
    )
    parser.add_argument(
        "--service", default=None,
        help="Service name (default: BLUEGREEN_SERVICE_NAME)"
    )
    parser.add_argument(
        "--registry", default=None,
        help="Image registry (default: BLUEGREEN_REGISTRY)"
    )
    parser.add_argument(
        "--namespace", default=None,
        help="Kubernetes namespace (default: BLUEGREEN_NAMESPACE)"
    )
    parser.add_argument(
        "--dry-run", action="store_true",
        help="Run against an in-memory platform instead of the cluster"
    )
    parser.add_argument(
        "--json", action="store_true",
        help="Print the deployment result as JSON on stdout"
    )
    parser.add_argument(
        "--verbose", action="store_true",
        help="Enable debug logging"
    )
    return parser


def _healthy_response(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"status": "UP"})


def _raise_interrupt(signum, frame):
    raise KeyboardInterrupt(f"received {signal.Signals(signum).name}")


def _image_from_args(parser, args, settings: Settings) -> ImageReference:
    if args.image:
        if args.service or args.registry:
            parser.error("--image already names the service and registry")
        try:
            return ImageReference.parse(args.image)
        except InvalidPlanError as exc:
            parser.error(exc.message)

    service = args.service or settings.service_name
    registry = args.registry or settings.registry
    if not service:
        parser.error("a service name is required (--service or BLUEGREEN_SERVICE_NAME)")
    if not registry:
        parser.error("a registry is required (--registry or BLUEGREEN_REGISTRY)")
    return ImageReference(registry=registry, service_name=service, tag=args.tag)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        settings = get_settings()
    except ValidationError as exc:
        parser.error(f"invalid BLUEGREEN_ setting: {exc}")

    image = _image_from_args(parser, args, settings)

    try:
        level = LogLevel.DEBUG if args.verbose else LogLevel(settings.log_level.upper())
        log_format = LogFormat(settings.log_format.lower())
    except ValueError as exc:
        parser.error(f"invalid logging setting: {exc}")
    # BLUEGREEN_LOG_* is already folded into settings
    configure_logging(
        LoggingConfig(level=level, format=log_format), env_override=False
    )

    config = settings.to_deployment_config()
    if args.namespace:
        config.namespace = args.namespace

    health_probe = None
    if args.dry_run:
        platform = InMemoryPlatform()
        health_probe = HealthProbe(
            client=httpx.Client(transport=httpx.MockTransport(_healthy_response))
        )
    else:
        platform = KubectlPlatform(
            namespace=config.namespace,
            kubeconfig=settings.kubeconfig or None,
            context=settings.kube_context or None,
            kubectl=settings.kubectl_path,
            replicas=settings.replicas,
            container_port=settings.container_port,
        )

    # A pipeline kill arrives as SIGTERM; treat it like Ctrl-C at a gate
    signal.signal(signal.SIGTERM, _raise_interrupt)

    orchestrator = DeploymentOrchestrator(
        platform=platform,
        approval_gate=ConsoleApprovalGate(),
        config=config,
        health_probe=health_probe,
    )
    result = orchestrator.run(image)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    else:
        print(f"{result.outcome.value.upper()}: {result.reason}")
        if result.rollback_error:
            print(f"Rollback error: {result.rollback_error}")

    return EXIT_CODES[result.outcome]


if __name__ == "__main__":
    sys.exit(main())
