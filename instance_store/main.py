import argparse
import sys
from pathlib import Path

from instance_store.__version__ import __version__
from instance_store.config.settings import ProvisionerSettings
from instance_store.logging import get_logger, setup_logging
from instance_store.provisioner import provision
from instance_store.storage.exceptions import (
    NothingToProvision,
    ProvisionerError,
    describe_error,
)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="coreos-cloud-instance-store-provisioner",
        description=(
            "Set up a filesystem on instance-local storage and redirect the "
            "configured directories onto it. Runs once, at first boot."
        ),
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help="Directory config file (default: /etc/coreos-cloud-instance-store-provisioner.yaml)",
    )
    parser.add_argument("-d", "--debug", action="store_true", help="Enable verbose debug output")
    parser.add_argument("--trace", action="store_true", help="Log raw collaborator output")
    parser.add_argument("--log-dir", type=Path, default=None, help="Also write log files here")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def main(argv=None, runner=None) -> int:
    args = parse_args(argv)
    setup_logging(debug=args.debug, trace=args.trace, log_dir=args.log_dir)
    log = get_logger(source="system", tags=["system", "cli"])

    settings = ProvisionerSettings.from_env(config_path=args.config)
    try:
        result = provision(settings, runner)
    except NothingToProvision as outcome:
        log.info(str(outcome))
        return 0
    except ProvisionerError as error:
        log.error(describe_error(error))
        return 1

    log.success(
        f"Instance storage on {result.volume.device_path} mounted at "
        f"{settings.mountpoint}; redirected {len(result.bind_units)} directories"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
