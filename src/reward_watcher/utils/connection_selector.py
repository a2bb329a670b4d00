"""
Endpoint selection for the websocket RPC connection.

Tries each candidate in order under a single timeout budget and returns the
first one that opens and answers a block number probe.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence

from web3 import AsyncWeb3
from web3.providers import WebSocketProvider

from ..config import to_websocket_url
from ..exceptions import AllEndpointsUnreachable

logger = logging.getLogger(__name__)

Web3Factory = Callable[[str], AsyncWeb3]


def build_websocket_web3(url: str) -> AsyncWeb3:
    """Create an unconnected AsyncWeb3 over a WebSocketProvider."""
    return AsyncWeb3(
        WebSocketProvider(
            url,
            request_timeout=60,
            subscription_response_queue_size=10000,
        )
    )


async def _open_and_probe(w3: AsyncWeb3) -> int:
    await w3.provider.connect()
    return await w3.eth.block_number


async def _close(w3: AsyncWeb3) -> None:
    try:
        await w3.provider.disconnect()
    except Exception as e:
        logger.debug(f"Error closing failed connection: {e}")


async def select_connection(
    candidates: Sequence[str],
    timeout: float = 5.0,
    web3_factory: Web3Factory | None = None
) -> tuple[AsyncWeb3, str]:
    """
    Connect to the first working endpoint among the candidates.

    The timeout covers the whole selection pass, not each candidate; once it
    is spent the remaining candidates are counted as failed without being
    attempted.

    Args:
        candidates: Endpoint URIs in preference order (http(s) is rewritten to ws(s))
        timeout: Budget in seconds for the whole pass
        web3_factory: Builds an unconnected AsyncWeb3 for a URL

    Returns:
        Tuple of (connected AsyncWeb3, chosen URL)

    Raises:
        ValueError: If no candidates are given
        AllEndpointsUnreachable: If every candidate fails to open or probe
    """
    if not candidates:
        raise ValueError("select_connection requires at least one endpoint")

    factory = web3_factory or build_websocket_web3
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    errors: list[str] = []

    for candidate in candidates:
        url = to_websocket_url(candidate)
        remaining = deadline - loop.time()
        if remaining <= 0:
            logger.warning(f"Skipping {url}: connection timeout of {timeout:g}s exhausted")
            errors.append(f"{url}: timeout exhausted")
            continue

        logger.debug(f"Connecting to {url} ({remaining:.1f}s left)")
        w3 = factory(url)
        connected = False
        try:
            block_number = await asyncio.wait_for(_open_and_probe(w3), timeout=remaining)
            connected = True
        except Exception as e:
            reason = "timed out" if isinstance(e, asyncio.TimeoutError) else str(e) or type(e).__name__
            logger.warning(f"RPC endpoint {url} failed: {reason}")
            errors.append(f"{url}: {reason}")
            continue
        finally:
            # Also runs on cancellation, which is not an Exception
            if not connected:
                await _close(w3)

        logger.info(f"Connected to {url} (latest block {block_number})")
        return w3, url

    raise AllEndpointsUnreachable(list(candidates), errors)
