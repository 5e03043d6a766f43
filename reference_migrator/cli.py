"""Command line entry point: rewrites the references of one change message."""

import argparse
import configparser
import logging
import os
import sys

from .errors import ConfigurationError, InsufficientScopesError, ValidationError
from .github import GitHubIssueHistory, GraphQLClient
from .history import GitLogHistory
from .migrator import ReferenceMigrator
from .work import MigrationInfo, TransformWork

DEFAULT_CONFIG_PATH = os.path.expanduser("~/.config/reference-migrator/config.ini")


class MigratorConfig:
    """Resolved settings for one run, with precedence CLI > ENV > config file."""

    def __init__(self, cli_args):
        self._load_config_file(cli_args.config)
        self._resolve_configuration(cli_args)

    def _load_config_file(self, config_path):
        """Loads the INI config file. It is not an error for this to be missing."""
        self.config_file = configparser.ConfigParser(interpolation=None)
        if config_path and os.path.exists(config_path):
            logging.info(f"Loading configuration from '{config_path}'")
            self.config_file.read(config_path)
        else:
            logging.info(
                f"Config file '{config_path}' not found. Relying on CLI args and ENV vars."
            )

    def _resolve_configuration(self, args):
        self.cfg = {}

        def _get_val(cli_val, env_key, conf_section, conf_key):
            val = cli_val
            if val is not None:
                return val
            val = os.getenv(env_key)
            if val is not None:
                return val
            return self.config_file.get(conf_section, conf_key, fallback=None)

        self.cfg["BEFORE"] = _get_val(args.before, "REFMIG_BEFORE", "MIGRATOR", "before")
        self.cfg["AFTER"] = _get_val(args.after, "REFMIG_AFTER", "MIGRATOR", "after")
        self.cfg["PATTERN"] = _get_val(
            args.pattern, "REFMIG_PATTERN", "MIGRATOR", "pattern"
        )
        self.cfg["REVERSE_PATTERN"] = _get_val(
            args.reverse_pattern,
            "REFMIG_REVERSE_PATTERN",
            "MIGRATOR",
            "reverse_pattern",
        )
        self.cfg["ORIGIN_LABEL"] = _get_val(
            args.origin_label, "REFMIG_ORIGIN_LABEL", "MIGRATOR", "origin_label"
        )
        additional = _get_val(
            ",".join(args.additional_label) if args.additional_label else None,
            "REFMIG_ADDITIONAL_LABELS",
            "MIGRATOR",
            "additional_labels",
        )
        self.cfg["ADDITIONAL_LABELS"] = [
            label.strip() for label in (additional or "").split(",") if label.strip()
        ]
        self.cfg["GIT_DIR"] = _get_val(
            args.git_dir, "REFMIG_GIT_DIR", "DESTINATION", "git_dir"
        )
        self.cfg["TARGET_TOKEN"] = _get_val(
            args.target_token, "GITHUB_TARGET_TOKEN", "GITHUB", "target_token"
        )
        self.cfg["TARGET_ORG"] = _get_val(
            args.target_org, "GITHUB_TARGET_ORG", "TARGET", "org"
        )
        self.cfg["TARGET_REPO"] = _get_val(
            args.target_repo, "GITHUB_TARGET_REPO", "TARGET", "repo"
        )

        required = ["BEFORE", "AFTER", "PATTERN", "ORIGIN_LABEL"]
        missing = [key for key in required if not self.cfg.get(key)]
        if not self.cfg["GIT_DIR"]:
            missing.extend(
                key
                for key in ["TARGET_TOKEN", "TARGET_ORG", "TARGET_REPO"]
                if not self.cfg.get(key)
            )
        if missing:
            logging.critical(
                f"Missing required configuration: {', '.join(missing)}. "
                "Set them via CLI, ENV vars, or the config file."
            )
            sys.exit(1)

    def build_migrator(self):
        return ReferenceMigrator.create(
            self.cfg["BEFORE"],
            self.cfg["AFTER"],
            self.cfg["PATTERN"],
            self.cfg["REVERSE_PATTERN"],
            self.cfg["ADDITIONAL_LABELS"],
        )

    def build_destination(self):
        # GIT_DIR takes precedence over the GitHub settings.
        if self.cfg["GIT_DIR"]:
            return GitLogHistory(self.cfg["GIT_DIR"])
        client = GraphQLClient(self.cfg["TARGET_TOKEN"])
        return GitHubIssueHistory(
            client, self.cfg["TARGET_ORG"], self.cfg["TARGET_REPO"]
        )


class ColoredFormatter(logging.Formatter):
    """A dependency-free logger formatter that adds ANSI colors to log levels."""

    COLORS = {
        "WARNING": "\033[93m",
        "INFO": "\033[92m",
        "DEBUG": "\033[96m",
        "CRITICAL": "\033[91m",
        "ERROR": "\033[91m",
    }
    RESET = "\033[0m"

    def format(self, record):
        log_color = self.COLORS.get(record.levelname, "")
        record.levelname = f"{log_color}{record.levelname:<8}{self.RESET}"
        return super().format(record)


def setup_logging(level):
    """Configures the root logger with a colored formatter on stderr."""
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    handler = logging.StreamHandler(sys.stderr)
    formatter = ColoredFormatter("%(levelname)s %(message)s")
    handler.setFormatter(formatter)
    if root_logger.hasHandlers():
        root_logger.handlers.clear()
    root_logger.addHandler(handler)


def build_parser():
    parser = argparse.ArgumentParser(
        description="Rewrite references in a change message so they point at the destination repository.",
        epilog="Configuration is resolved in order: CLI > Environment Variables > Config File.",
        formatter_class=argparse.RawTextHelpFormatter,
    )
    verb_group = parser.add_mutually_exclusive_group()
    verb_group.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Suppress INFO logs, showing only warnings and errors.",
    )
    verb_group.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=1,
        help="Increase verbosity. -v for INFO (default), -vv for DEBUG.",
    )
    parser.add_argument(
        "--message-file",
        help="File holding the change message. Reads stdin when omitted.",
    )
    parser.add_argument(
        "--reverse",
        action="store_true",
        help="Apply the reversed migration (leaves the message unchanged).",
    )
    conf_group = parser.add_argument_group(
        "Configuration (overrides ENV vars and config file)"
    )
    conf_group.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to the config file (default: {DEFAULT_CONFIG_PATH})",
    )
    conf_group.add_argument(
        "--before", help="Origin reference template, e.g. '#${reference}'. (ENV: REFMIG_BEFORE)"
    )
    conf_group.add_argument(
        "--after", help="Destination reference template, e.g. 'DEST-${reference}'. (ENV: REFMIG_AFTER)"
    )
    conf_group.add_argument(
        "--pattern", help="Regex matching an origin reference. (ENV: REFMIG_PATTERN)"
    )
    conf_group.add_argument(
        "--reverse-pattern",
        help="Regex every resolved destination reference must match. (ENV: REFMIG_REVERSE_PATTERN)",
    )
    conf_group.add_argument(
        "--origin-label",
        help="Label recording the origin reference in destination changes. (ENV: REFMIG_ORIGIN_LABEL)",
    )
    conf_group.add_argument(
        "--additional-label",
        action="append",
        help="Extra label to search; repeatable. (ENV: REFMIG_ADDITIONAL_LABELS, comma separated)",
    )
    conf_group.add_argument(
        "--git-dir", help="Local checkout of the destination. (ENV: REFMIG_GIT_DIR)"
    )
    conf_group.add_argument(
        "--target-token", help="Destination repo PAT. (ENV: GITHUB_TARGET_TOKEN)"
    )
    conf_group.add_argument(
        "--target-org", help="Destination organization name. (ENV: GITHUB_TARGET_ORG)"
    )
    conf_group.add_argument(
        "--target-repo", help="Destination repository name. (ENV: GITHUB_TARGET_REPO)"
    )
    return parser


def main(argv=None):
    """Parses arguments, rewrites the message and prints it to stdout."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.quiet:
        log_level = logging.WARNING
    elif args.verbose == 1:
        log_level = logging.INFO
    else:
        log_level = logging.DEBUG
    setup_logging(log_level)

    try:
        config = MigratorConfig(cli_args=args)
        migrator = config.build_migrator()
        transformation = migrator.reverse() if args.reverse else migrator
        if args.message_file:
            with open(args.message_file, encoding="utf-8") as f:
                message = f.read()
        else:
            message = sys.stdin.read()
        work = TransformWork(
            message,
            MigrationInfo(config.cfg["ORIGIN_LABEL"], config.build_destination()),
        )
        logging.info(f"Applying {transformation.describe()}")
        transformation.transform(work)
        sys.stdout.write(work.message)
    except ConfigurationError as e:
        logging.critical(f"Invalid migrator configuration: {e}")
        sys.exit(1)
    except ValidationError as e:
        if isinstance(e.__cause__, InsufficientScopesError):
            logging.critical("FATAL: GitHub token is missing required permissions.")
            logging.critical(f"API Message: {e.__cause__}")
        else:
            logging.critical(f"Could not migrate references: {e}")
        sys.exit(1)
    except Exception as e:
        logging.critical(
            f"A fatal, unexpected error occurred: {e}",
            exc_info=log_level == logging.DEBUG,
        )
        sys.exit(1)


if __name__ == "__main__":
    main()
