"""
deps.py — Shared route dependencies.

  CurrentAccount   account number from the Bearer identity token (401 otherwise)
  Database         the Motor database (503 when MongoDB is unavailable)
  GeoPosition      optional location from the `Geo-Position: lat;lng` header
"""

from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from autonomy.core.database import get_db
from autonomy.core.geo import parse_location_header
from autonomy.core.security import decode_identity_token
from autonomy.models.location import Location

# Reusable bearer extractor (does NOT auto-raise on missing token)
_bearer = HTTPBearer(auto_error=False)
CredDep = Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer)]


def _current_account(credentials: CredDep) -> str:
    cred_error = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not credentials:
        raise cred_error

    account_number = decode_identity_token(credentials.credentials)
    if not account_number:
        raise cred_error
    return account_number


def _database(db=Depends(get_db)):
    if db is None:
        raise HTTPException(status_code=503, detail="Database unavailable")
    return db


def _geo_position(geo_position: Optional[str] = Header(default=None)) -> Optional[Location]:
    # InvalidInputError from a malformed header is answered with 400
    if not geo_position:
        return None
    return parse_location_header(geo_position)


CurrentAccount = Annotated[str, Depends(_current_account)]
Database = Annotated[object, Depends(_database)]
GeoPosition = Annotated[Optional[Location], Depends(_geo_position)]


def resolve_location(body_location: Optional[Location], header_location: Optional[Location]) -> Location:
    location = body_location or header_location
    if location is None:
        raise HTTPException(status_code=400, detail="location is required (body or Geo-Position header)")
    return location
