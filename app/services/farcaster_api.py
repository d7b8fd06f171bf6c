import logging
from functools import lru_cache

import requests
from web3 import Web3

from app.core.config import settings
from app.core.errors import NotFoundError, ServiceUnavailableError

logger = logging.getLogger(__name__)

ID_REGISTRY_ABI = [
    {
        "inputs": [{"internalType": "uint256", "name": "fid", "type": "uint256"}],
        "name": "custodyOf",
        "outputs": [{"internalType": "address", "name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function",
    }
]


class NeynarLookup:
    """Custody + verified ETH addresses of an FID, from the Neynar API."""

    def __init__(self, api_key: str, base_url: str, timeout: float):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = {
            "Accept": "application/json",
            "api_key": api_key,
            "x-api-key": api_key,
        }

    def addresses_for_fid(self, fid: int) -> set[str]:
        url = f"{self.base_url}/v2/farcaster/user/bulk"
        try:
            response = requests.get(url, headers=self.headers, params={"fids": fid}, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Neynar lookup failed for fid=%s: %s", fid, e)
            raise ServiceUnavailableError("Farcaster lookup unavailable")

        if response.status_code == 404:
            raise NotFoundError("Unknown Farcaster ID")
        if response.status_code != 200:
            logger.error("Neynar lookup fid=%s: %s - %s", fid, response.status_code, response.text[:200])
            raise ServiceUnavailableError("Farcaster lookup unavailable")

        users = response.json().get("users", [])
        if not users:
            raise NotFoundError("Unknown Farcaster ID")

        user = users[0]
        addresses = set(user.get("verified_addresses", {}).get("eth_addresses", []) or [])
        if user.get("custody_address"):
            addresses.add(user["custody_address"])
        return {a.lower() for a in addresses}


class OnchainLookup:
    """Current custody address of an FID from the ID Registry on Optimism."""

    def __init__(self, rpc_url: str, registry_address: str, timeout: float):
        w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout}))
        self.registry = w3.eth.contract(
            address=Web3.to_checksum_address(registry_address),
            abi=ID_REGISTRY_ABI,
        )

    def addresses_for_fid(self, fid: int) -> set[str]:
        try:
            custody = self.registry.functions.custodyOf(fid).call()
        except Exception as e:  # provider/transport errors vary by web3 version
            logger.error("ID Registry lookup failed for fid=%s: %s", fid, e)
            raise ServiceUnavailableError("Farcaster lookup unavailable")
        if int(custody, 16) == 0:
            raise NotFoundError("Unknown Farcaster ID")
        return {custody.lower()}


@lru_cache(maxsize=1)
def get_farcaster_lookup():
    if settings.FARCASTER_LOOKUP == "onchain":
        return OnchainLookup(settings.OPTIMISM_RPC_URL, settings.ID_REGISTRY_ADDRESS, settings.HTTP_TIMEOUT_SECONDS)
    if settings.FARCASTER_LOOKUP == "neynar":
        if not settings.NEYNAR_API_KEY:
            raise ServiceUnavailableError("Farcaster lookup is not configured")
        return NeynarLookup(settings.NEYNAR_API_KEY, settings.NEYNAR_API_URL, settings.HTTP_TIMEOUT_SECONDS)
    raise ServiceUnavailableError(f"Unsupported FARCASTER_LOOKUP: {settings.FARCASTER_LOOKUP}")
