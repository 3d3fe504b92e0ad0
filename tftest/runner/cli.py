# Where: tftest/runner/cli.py
# What: Command-line definition for tftest-run.
# Why: Flags left unset stay None so environment settings decide instead.
import argparse

# (flag, dest, const, help)
_TOGGLES = (
    ("--parallel", "parallel", True, "Run examples concurrently (the default)"),
    ("--sequential", "parallel", False, "Run examples one at a time in directory order"),
    ("--no-idempotency", "idempotency", False, "Skip the plan-after-apply idempotency check"),
    ("--color", "color", True, "Force colored status words"),
    ("--no-color", "color", False, "Never color status words"),
    ("--emoji", "emoji", True, "Force status icons"),
    ("--no-emoji", "emoji", False, "Never print status icons"),
)


def build_parser():
    parser = argparse.ArgumentParser(
        prog="tftest-run",
        description="Provision, check and destroy every Terraform example under a directory",
    )
    parser.add_argument("root", help="Directory holding one sub-directory per example")
    parser.add_argument("--config", help="YAML file mapping example directories to configs")
    parser.add_argument(
        "--prefix",
        help="Only run directories starting with this prefix (pass '' to run all)",
    )
    parser.add_argument("--max-workers", type=int, help="Cap on examples running at once")
    parser.add_argument("--terraform-binary", help="terraform or tofu executable")
    parser.add_argument("--log-dir", help="Where per-subtest log files are written")
    parser.add_argument(
        "--verbose", action="store_true", help="Echo engine output and phase starts"
    )
    for flag, dest, const, help_text in _TOGGLES:
        parser.add_argument(flag, dest=dest, action="store_const", const=const, help=help_text)
    parser.set_defaults(**{dest: None for _, dest, _, _ in _TOGGLES})
    return parser


def parse_args(argv=None):
    return build_parser().parse_args(argv)
