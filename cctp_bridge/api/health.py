from fastapi import APIRouter
from typing import Dict, Any

from ..config import settings
from ..core.bridge.constants import SupportedChain

router = APIRouter()


@router.get("/healthz")
async def health_check() -> Dict[str, Any]:
    """Configuration readiness; makes no network calls"""

    rpc_status = {
        chain.value: "configured" if settings.rpc_url_for(chain.value) else "missing"
        for chain in SupportedChain
    }
    ready = settings.has_signer and all(status == "configured" for status in rpc_status.values())

    return {
        "status": "healthy" if ready else "degraded",
        "source_chain": settings.source_chain.upper(),
        "signer": "configured" if settings.has_signer else "missing",
        "rpc": rpc_status,
        "attestation_api": settings.attestation_api_url,
    }
