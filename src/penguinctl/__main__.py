#!/usr/bin/env python3

import asyncio
import logging
import sys
import warnings

import hydra
from omegaconf import DictConfig, OmegaConf
from omegaconf.errors import InterpolationResolutionError, MissingMandatoryValue
from pydantic import ValidationError

from penguin import PenguinError

from penguinctl.command_base import CommandError
from penguinctl.commands import command_adapter
from penguinctl.reconcilers import ReconcileError
from penguinctl.wait import WaitCancelledError


log = logging.getLogger("penguinctl")


@hydra.main(version_base=None, config_path="conf", config_name="config")
def main(cfg: DictConfig) -> None:
    """Main entry point with Hydra configuration."""
    warnings.simplefilter("default")
    logging.captureWarnings(True)

    try:
        # Parse config to discriminated union type
        config = command_adapter.validate_python(
            OmegaConf.to_container(cfg, resolve=True, throw_on_missing=True)
        )

        # Create and run command
        command = config.create_command()
        asyncio.run(command.run())

    except KeyboardInterrupt:
        log.info("Interrupted")
        sys.exit(130)
    except (InterpolationResolutionError, MissingMandatoryValue, ValidationError) as e:
        log.error("Configuration error: %s", e)
        sys.exit(1)
    except CommandError as e:
        log.error("Command error: %s", e)
        sys.exit(1)
    except ReconcileError as e:
        log.error("Reconcile error: %s", e)
        sys.exit(1)
    except WaitCancelledError as e:
        log.error("Wait aborted: %s", e)
        sys.exit(1)
    except PenguinError as e:
        log.error("API error: %s", e)
        sys.exit(1)
    except Exception as e:
        log.exception("Fatal error: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
