"""
Read endpoints for discovery and quality results
"""

from fastapi import APIRouter, Depends, HTTPException, status
import logging

from api.dependencies import get_stores, verify_api_key
from orchestration.stores import Stores
from schemas.catalog import DiscoveredCatalog
from schemas.quality import QualityReport

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Catalog"], dependencies=[Depends(verify_api_key)])


@router.get("/catalog/{connection_id}", response_model=DiscoveredCatalog)
async def get_catalog(connection_id: str, stores: Stores = Depends(get_stores)):
    """Latest discovered catalog of a connection."""
    catalog = await stores.catalog.get_snapshot(connection_id)
    if catalog is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No catalog for connection {connection_id}",
        )
    return catalog


@router.get("/quality/{connection_id}/latest", response_model=QualityReport)
async def get_latest_quality_report(connection_id: str, stores: Stores = Depends(get_stores)):
    report = await stores.quality_reports.latest_report(connection_id)
    if report is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No quality report for connection {connection_id}",
        )
    return report
