#!/usr/bin/env python3
"""Download the Livepeer protocol ABIs used by the reward watcher.

Fetches the Arbitrum mainnet deployment records from the livepeer/protocol
repository and writes only their ``abi`` field to disk.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

import httpx

from .config import DEFAULT_ABI_DIR
from .exceptions import AbiDownloadError

logger = logging.getLogger(__name__)

DEPLOYMENTS_URL = (
    "https://raw.githubusercontent.com/livepeer/protocol/delta/deployments/arbitrumMainnet/{contract}.json"
)

# Deployment record name -> output file name, downloaded in this order
CONTRACTS: dict[str, str] = {
    "BondingManagerTarget": "BondingManager.json",
    "RoundsManagerTarget": "RoundsManager.json",
}


async def download_abi(
    client: httpx.AsyncClient,
    contract_name: str,
    output_path: Path,
    url_template: str = DEPLOYMENTS_URL
) -> Path:
    """Download one deployment record and write its ABI to ``output_path``.

    Nothing is written unless the fetch and parse both succeed.

    Args:
        client: HTTP client to use
        contract_name: Deployment record name, e.g. "BondingManagerTarget"
        output_path: Destination file; parent directories are created
        url_template: URL with a ``{contract}`` placeholder

    Returns:
        The written path

    Raises:
        AbiDownloadError: On transport errors, non-200 responses, bad JSON or a missing abi field
    """
    url = url_template.format(contract=contract_name)
    logger.info(f"Downloading {contract_name} ABI from {url}...")

    try:
        response: httpx.Response = await client.get(url)
    except httpx.HTTPError as e:
        raise AbiDownloadError(f"failed to download {contract_name}: {e}") from e

    if response.status_code != 200:
        raise AbiDownloadError(f"failed to download {contract_name}: HTTP {response.status_code}")

    try:
        deployment: Any = response.json()
    except ValueError as e:
        raise AbiDownloadError(f"failed to parse JSON for {contract_name}: {e}") from e

    if not isinstance(deployment, dict) or "abi" not in deployment:
        raise AbiDownloadError(f"no abi field in deployment record for {contract_name}")

    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json.dumps(deployment["abi"], indent=2))
    except OSError as e:
        raise AbiDownloadError(f"failed to write ABI file {output_path}: {e}") from e

    logger.info(f"✅ Downloaded {contract_name} ABI to {output_path}")
    return output_path


async def download_all(
    output_dir: Path,
    url_template: str = DEPLOYMENTS_URL,
    transport: httpx.AsyncBaseTransport | None = None
) -> list[Path]:
    """Download every ABI in CONTRACTS, stopping at the first failure.

    Files written before a failure are left in place.
    """
    written: list[Path] = []
    async with httpx.AsyncClient(transport=transport, timeout=30.0, follow_redirects=True) as client:
        for contract_name, file_name in CONTRACTS.items():
            path = await download_abi(client, contract_name, output_dir / file_name, url_template)
            written.append(path)
    return written


async def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="reward-watcher-download-abis",
        description="Download the Livepeer BondingManager and RoundsManager ABIs"
    )
    parser.add_argument(
        "--output-dir",
        default=DEFAULT_ABI_DIR,
        help="Directory to write the ABI files to (default: ABI)"
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    logger.info("Downloading Livepeer protocol ABIs...")

    try:
        await download_all(Path(args.output_dir))
    except AbiDownloadError as e:
        logger.error(f"❌ Error: {e}")
        sys.exit(1)

    logger.info("✅ All ABIs downloaded successfully!")


def cli() -> None:
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    cli()
