import argparse
import asyncio
import logging
import sys
from pathlib import Path

from unstaker.asset import AssetError
from unstaker.chain import ChainClient, ChainError
from unstaker.config import ConfigError, accounts_file, config_file, load_allow_set, load_config
from unstaker.logging_config import setup_logging
from unstaker.pipeline import Unstaker
from unstaker.retry import RetryLimitExceeded
from unstaker.signer import K1Signer, PrivateKeyError

log = logging.getLogger("unstaker")

FATAL_ERRORS = (ConfigError, AssetError, ChainError, PrivateKeyError, RetryLimitExceeded)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="unstaker", description="Reduce CPU/NET stake delegated to many accounts.")
    parser.add_argument("-c", "--config",
                        type=Path,
                        default=config_file,
                        help="Path to config TOML file.",
                        )
    parser.add_argument("-a", "--accounts",
                        type=Path,
                        default=accounts_file,
                        help="Newline-delimited accounts to unstake from.",
                        )
    parser.add_argument("--dry-run",
                        action="store_true",
                        help="Scan and plan, but submit nothing.",
                        )
    return parser.parse_args(argv)


async def run(args) -> int:
    cfg = load_config(args.config)
    allow_set = load_allow_set(args.accounts)
    signer = K1Signer()
    for key in cfg.signing_keys:
        log.info("Signing as %s@%s with %s", cfg.account, cfg.permission, signer.public_key(key))
    async with ChainClient(cfg.node_url, timeout=cfg.timeout) as chain:
        await Unstaker(cfg, chain, signer).run(allow_set, dry_run=args.dry_run)
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging()
    try:
        return asyncio.run(run(args))
    except FATAL_ERRORS as e:
        log.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
