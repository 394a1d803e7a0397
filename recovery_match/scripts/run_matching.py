import logging
import sys

from recovery_match.scheduler import get_matching_service

def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")
    result = get_matching_service().run()
    print(f"Matching {result.status}: {result.new_matches} new matches")
    return 0 if result.status == "completed" else 1

if __name__ == "__main__":
    sys.exit(main())
