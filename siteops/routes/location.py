from fastapi import APIRouter, Depends, Query

from ..services.geocoding import GeocodingService
from ..services.geofence import haversine_distance_m, is_within_radius


router = APIRouter(prefix="/location", tags=["location"])


def get_geocoder() -> GeocodingService:
    return GeocodingService()


@router.get("/reverse-geocode")
async def reverse_geocode(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    geocoder: GeocodingService = Depends(get_geocoder),
):
    address = await geocoder.resolve_address(lat, lng)
    return {"lat": lat, "lng": lng, "address": address}


@router.get("/distance")
def distance(
    lat1: float = Query(..., ge=-90, le=90),
    lng1: float = Query(..., ge=-180, le=180),
    lat2: float = Query(..., ge=-90, le=90),
    lng2: float = Query(..., ge=-180, le=180),
    radius_m: float = Query(None, gt=0),
):
    result = {"distance_m": round(haversine_distance_m(lat1, lng1, lat2, lng2), 2)}
    if radius_m is not None:
        result["within_radius"] = is_within_radius(lat1, lng1, lat2, lng2, radius_m)
    return result
