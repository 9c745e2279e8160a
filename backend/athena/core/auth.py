from __future__ import annotations

import time
import httpx
import logging
from typing import Any, Callable, Dict, Optional
from jose import jwt
from jose.utils import base64url_decode
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa, ec
from fastapi import Depends, HTTPException, Header

from athena.core.config import SUPABASE_JWKS_URL, SUPABASE_URL, SUPABASE_ANON_KEY
from athena.services import rbac, supabase_repo

_logger = logging.getLogger(__name__)

_jwks_cache: Dict[str, Any] | None = None
_jwks_cache_expires_at: float = 0.0
_public_keys_cache: Dict[str, str] = {}

_EC_CURVES = {
    "P-256": ec.SECP256R1,
    "P-384": ec.SECP384R1,
    "P-521": ec.SECP521R1,
}


async def _get_jwks() -> Dict[str, Any]:
    """
    Fetches the Supabase JSON Web Key Set used to validate JWTs.

    The .well-known/jwks.json endpoint is public. The set is cached for
    10 minutes so rotated keys are picked up quickly.
    """
    global _jwks_cache, _jwks_cache_expires_at
    now = time.time()
    if _jwks_cache and now < _jwks_cache_expires_at:
        return _jwks_cache

    if not SUPABASE_JWKS_URL:
        raise RuntimeError("SUPABASE_JWKS_URL is not configured")

    _logger.info("[JWKS] Fetching JWKS from: %s", SUPABASE_JWKS_URL)
    async with httpx.AsyncClient(timeout=10) as client:
        try:
            resp = await client.get(SUPABASE_JWKS_URL)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            _logger.error("Failed to fetch JWKS: HTTP %s", e.response.status_code)
            raise RuntimeError(f"Failed to fetch JWKS: HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            _logger.error("Network error fetching JWKS: %s", e)
            raise RuntimeError(f"Network error while fetching JWKS: {e}") from e

    _jwks_cache = resp.json()
    if not _jwks_cache.get("keys"):
        _logger.warning("[JWKS] Received empty keys array")
    _jwks_cache_expires_at = now + 600
    _public_keys_cache.clear()
    return _jwks_cache


def _decode_base64url(value: bytes) -> int:
    return int.from_bytes(value, byteorder="big")


def _get_pem_key_from_jwks(jwks: Dict[str, Any], kid: str) -> str:
    """
    Builds the PEM public key matching the token's kid.

    Supports RSA (RS256) and Elliptic Curve (ES256) keys.
    """
    if kid in _public_keys_cache:
        return _public_keys_cache[kid]

    keys = jwks.get("keys", [])
    for key in keys:
        key_kid = key.get("kid")
        if not key_kid or key_kid.lower() != kid.lower():
            continue

        kty = key.get("kty", "").upper()
        alg = key.get("alg", "").upper()
        try:
            if kty == "RSA" or alg == "RS256":
                n_int = _decode_base64url(base64url_decode(key["n"].encode()))
                e_int = _decode_base64url(base64url_decode(key["e"].encode()))
                public_key = rsa.RSAPublicNumbers(e_int, n_int).public_key()
            elif kty == "EC" or alg == "ES256":
                crv_name = key.get("crv", "P-256")
                if crv_name not in _EC_CURVES:
                    raise ValueError(f"Unsupported curve: {crv_name}")
                x_int = _decode_base64url(base64url_decode(key["x"].encode()))
                y_int = _decode_base64url(base64url_decode(key["y"].encode()))
                public_key = ec.EllipticCurvePublicNumbers(x_int, y_int, _EC_CURVES[crv_name]()).public_key()
            else:
                raise ValueError(f"Unsupported key type: kty={kty}, alg={alg}")
        except KeyError as e:
            raise ValueError(f"Invalid key structure for kid {kid}: missing {e}") from e

        pem_public_key = public_key.public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        ).decode("utf-8")
        _public_keys_cache[kid] = pem_public_key
        return pem_public_key

    available_kids = [k.get("kid") for k in keys if k.get("kid")]
    raise ValueError(f"Key with kid '{kid}' not found in JWKS. Available kids: {available_kids}")


async def _verify_token_via_auth_server(token: str) -> Dict[str, Any]:
    """
    Validates the token against the Supabase Auth server.
    Used for legacy HS256 tokens or when the JWKS lookup fails.
    """
    if not SUPABASE_URL or not SUPABASE_ANON_KEY:
        raise RuntimeError("Supabase not configured for auth server validation")

    headers = {
        "apikey": SUPABASE_ANON_KEY,
        "Authorization": f"Bearer {token}",
    }
    async with httpx.AsyncClient(timeout=10) as client:
        try:
            resp = await client.get(f"{SUPABASE_URL}/auth/v1/user", headers=headers)
        except httpx.RequestError as e:
            raise HTTPException(status_code=401, detail="Token validation error") from e

    if resp.status_code != 200:
        raise HTTPException(status_code=401, detail="Token validation failed")

    user_data = resp.json()
    user_id = user_data.get("id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid user data from auth server")

    return {
        "sub": user_id,
        "email": user_data.get("email"),
        "role": user_data.get("role", "authenticated"),
        "iss": f"{SUPABASE_URL}/auth/v1",
    }


async def verify_supabase_jwt(token: str) -> Dict[str, Any]:
    global _jwks_cache, _jwks_cache_expires_at
    if not token:
        raise HTTPException(status_code=401, detail="Missing token")

    try:
        unverified_header = jwt.get_unverified_header(token)
        kid = unverified_header.get("kid")
        token_alg = unverified_header.get("alg", "RS256").upper()

        if token_alg == "HS256":
            return await _verify_token_via_auth_server(token)

        if not kid:
            raise HTTPException(status_code=401, detail="Token missing key ID (kid)")

        jwks = await _get_jwks()
        try:
            pem_public_key = _get_pem_key_from_jwks(jwks, kid)
        except ValueError:
            # Cached JWKS may be stale after a key rotation
            _jwks_cache = None
            _jwks_cache_expires_at = 0.0
            _public_keys_cache.clear()
            jwks = await _get_jwks()
            try:
                pem_public_key = _get_pem_key_from_jwks(jwks, kid)
            except ValueError:
                return await _verify_token_via_auth_server(token)

        options = {
            "verify_signature": True,
            "verify_exp": True,
            "verify_aud": False,  # Supabase tokens may carry a different aud
        }
        algorithms = [token_alg] if token_alg in ("ES256", "RS256") else [token_alg, "ES256", "RS256"]
        return jwt.decode(token, pem_public_key, algorithms=algorithms, options=options)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=401, detail="Invalid token key") from e
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired") from None
    except jwt.JWTError as e:
        raise HTTPException(status_code=401, detail="Invalid or expired token") from e


async def get_current_user(authorization: str = Header(default=None, alias="Authorization")) -> Dict[str, Any]:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing Bearer token")

    token = authorization.replace("Bearer ", "").strip()
    claims = await verify_supabase_jwt(token)

    user_id = claims.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    return {"user_id": user_id, "claims": claims, "token": token}


def get_current_profile(user=Depends(get_current_user)) -> Dict[str, Any]:
    """Authenticated user plus its user_profiles row (role, status, org_id)."""
    profile = supabase_repo.get_user_profile(user["token"], user["user_id"])
    return {**user, "profile": profile}


def require_permission(*permissions: str, require_all: bool = False) -> Callable[..., Dict[str, Any]]:
    """
    Route dependency enforcing app permissions for the caller.

    Usage: `current = Depends(require_permission("manage_users"))`
    """
    def _guard(current=Depends(get_current_profile)) -> Dict[str, Any]:
        result = rbac.evaluate_guard(
            current.get("user_id"),
            current.get("profile"),
            list(permissions),
            require_all=require_all,
        )
        if not result.allowed:
            _logger.warning(
                "[RBAC] Denied user %s: %s",
                str(current.get("user_id") or "")[:8],
                result.error,
            )
            raise HTTPException(status_code=result.status_code, detail=result.error)
        return current

    return _guard


def get_user_role(current: Dict[str, Any]) -> Optional[str]:
    profile = current.get("profile") or {}
    return profile.get("role")


def require_ai_permission(permission_key: str) -> Callable[..., Dict[str, Any]]:
    """
    Route dependency enforcing an AI permission (rbac.AI_PERMISSIONS key)
    through the caller's role and its inherited permissions.
    """
    permission = rbac.AI_PERMISSIONS[permission_key]

    def _guard(current=Depends(get_current_profile)) -> Dict[str, Any]:
        profile = current.get("profile")
        if not profile:
            raise HTTPException(status_code=403, detail="Profile not found")
        if not rbac.is_user_active(profile):
            raise HTTPException(status_code=403, detail=f"Account is {profile.get('status')}")
        result = rbac.check_access(profile.get("role") or "", permission)
        if not result["allowed"]:
            raise HTTPException(status_code=403, detail=result["reason"])
        return current

    return _guard


ORG_WIDE_ROLES = ("admin", "organizer")


def resolve_org_id(requested_org_id: Optional[str], current: Dict[str, Any]) -> Optional[str]:
    """
    Org the caller may act on.

    Admins and organizers may name any org and default to their own. Other
    roles are pinned to their profile's org; naming a different one is a 403.
    """
    profile = current.get("profile") or {}
    own_org_id = profile.get("org_id")
    if profile.get("role") in ORG_WIDE_ROLES:
        return requested_org_id or own_org_id
    if requested_org_id and requested_org_id != own_org_id:
        _logger.warning(
            "[RBAC] Denied user %s access to org %s",
            str(current.get("user_id") or "")[:8],
            requested_org_id,
        )
        raise HTTPException(status_code=403, detail="Access denied to this organization")
    return own_org_id
