# config/tools/validate_config.py

import sys           # for exit codes
from dataclasses import asdict
from pprint import pprint  # for structured printing

# make src discoverable if running as a script
from pathlib import Path
# __file__ is .../config/tools/validate_config.py
# parents[2] is the project root; append ROOT/src
PROJECT_ROOT = Path(__file__).resolve().parents[2]
sys.path.append(str(PROJECT_ROOT / "src"))

from env.loader import active_profile_name, load_config  # import our loader
from env.schema import ConfigError


def main(argv=None) -> int:
    """Load and print the resolved miner profile, failing fast on errors."""
    argv = sys.argv[1:] if argv is None else argv
    profile = argv[0] if argv else None

    try:
        config = load_config(profile=profile)
        name = profile or active_profile_name()
    except (ConfigError, KeyError, FileNotFoundError) as e:
        print("Config validation FAILED:", file=sys.stderr)
        print(repr(e), file=sys.stderr)
        return 1                             # non-zero exit: CI will mark as failed

    print("Config validation OK.")
    print("\nActive profile:", name)
    print("\nResolved options:")
    pprint(asdict(config))
    return 0


if __name__ == "__main__":
    sys.exit(main())  # run main() only when script is executed directly
