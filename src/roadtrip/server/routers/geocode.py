"""Reverse geocoding endpoint.

GET /api/geocode?lat=&lon= - nearest city, county and state
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from ...services.geocoding import Geocoder, GeocodingError
from ..dependencies import get_geocoder

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/geocode")
async def geocode(
    lat: Optional[float] = None,
    lon: Optional[float] = None,
    geocoder: Geocoder = Depends(get_geocoder),
):
    if lat is None or lon is None:
        raise HTTPException(status_code=400, detail="Missing lat/lon parameters")

    try:
        place = await geocoder.reverse(lat, lon)
    except GeocodingError as e:
        logger.error(f"Geocode error: {e}")
        raise HTTPException(status_code=502, detail="Geocoding service error")

    return JSONResponse(content=place.to_wire(), headers={"Cache-Control": "public, max-age=300"})
