from harvest.scraper.run import _cli_entrypoint
import sys

if __name__ == "__main__":
    # Same entrypoint as the ``harvest`` console script; HARVEST_* environment
    # variables provide the defaults for every flag.
    sys.exit(_cli_entrypoint(sys.argv[1:]))
