"""
Upgrade of legacy voter documents to the current voter schema.

Three document layouts were in use before voters moved to the relational
store:

- v1: fingerprint and phone mandatory, ``verificationStatus`` flags,
  history entries without a candidate
- v2: phone and fingerprint optional, WebAuthn ``credentials`` with
  ``credentialId``/``publicKey``/``counter``, history with candidate and
  revote flag
- v3: ``credentials`` with ``credentialID``/``credentialPublicKey``, a
  ``hasVoted`` map and history entries carrying ``blockchainTxHash``

``upgrade_legacy_voter`` turns any of them into a plain dictionary in the
current (v3 relational) layout.
"""
import base64
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from evote.core.timeutils import to_naive_utc, utcnow
from evote.models.voter import VOTER_SCHEMA_VERSION


# Fixed namespace so a legacy object id always maps to the same UUID
LEGACY_ID_NAMESPACE = uuid.UUID("6f1c1f5e-4c1e-4b8e-9a55-2f0d7f3b8a10")

AADHAAR_RE = re.compile(r"^\d{12}$")
PHONE_RE = re.compile(r"^\d{10}$")


class LegacyDocumentError(ValueError):
    """Document cannot be upgraded."""


def detect_schema_version(document: Dict[str, Any]) -> int:
    """Best guess of which layout a legacy document uses."""
    explicit = document.get("schemaVersion")
    if explicit in (1, 2, 3):
        return explicit

    credentials = document.get("credentials") or []
    if "hasVoted" in document or any("credentialID" in c for c in credentials):
        return 3
    if credentials or any("candidateId" in h for h in document.get("votingHistory") or []):
        return 2
    return 1


def legacy_uuid(value: Any) -> Optional[uuid.UUID]:
    """UUIDs pass through; other ids (e.g. document-store object ids) map to uuid5."""
    if value is None or value == "":
        return None
    if isinstance(value, dict) and "$oid" in value:
        value = value["$oid"]
    if isinstance(value, uuid.UUID):
        return value
    value = str(value)
    try:
        return uuid.UUID(value)
    except ValueError:
        return uuid.uuid5(LEGACY_ID_NAMESPACE, value)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Accepts datetimes, ISO strings, epoch milliseconds and ``{"$date": ...}``."""
    if value is None or value == "":
        return None
    if isinstance(value, dict) and "$date" in value:
        value = value["$date"]
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc).replace(tzinfo=None)
    try:
        return to_naive_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))
    except ValueError as e:
        raise LegacyDocumentError(f"Unreadable timestamp: {value!r}") from e


def _text(value: Any) -> Optional[str]:
    """Credential blobs may arrive as bytes or ``{"$binary": ...}`` wrappers."""
    if isinstance(value, dict):
        binary = value.get("$binary")
        value = binary.get("base64") if isinstance(binary, dict) else binary
    if isinstance(value, (bytes, bytearray)):
        return base64.urlsafe_b64encode(bytes(value)).decode().rstrip("=")
    return str(value) if value is not None else None


def _upgrade_credentials(document: Dict[str, Any], version: int) -> List[Dict[str, Any]]:
    credentials = []
    for cred in document.get("credentials") or []:
        if version >= 3:
            credential_id = _text(cred.get("credentialID"))
            public_key = _text(cred.get("credentialPublicKey"))
        else:
            credential_id = _text(cred.get("credentialId"))
            public_key = _text(cred.get("publicKey"))
        if not credential_id:
            continue
        created_at = parse_timestamp(cred.get("createdAt")) or utcnow()
        credentials.append({
            "credential_id": credential_id,
            "public_key": public_key or "",
            "sign_count": int(cred.get("counter") or 0),
            "created_at": created_at.isoformat(),
        })
    return credentials


def _upgrade_history(document: Dict[str, Any], fallback_time: datetime) -> List[Dict[str, Any]]:
    """One entry per election, the latest one wins."""
    latest: Dict[uuid.UUID, Dict[str, Any]] = {}
    seen: Dict[uuid.UUID, int] = {}

    for entry in document.get("votingHistory") or []:
        election_id = legacy_uuid(entry.get("electionId"))
        if election_id is None:
            continue
        record = {
            "election_id": election_id,
            "candidate_id": legacy_uuid(entry.get("candidateId")),
            "voted_at": parse_timestamp(entry.get("votedAt")) or fallback_time,
            "is_revote": bool(entry.get("isRevote", False)),
            "blockchain_tx_hash": entry.get("blockchainTxHash"),
        }
        seen[election_id] = seen.get(election_id, 0) + 1
        current = latest.get(election_id)
        if current is None or record["voted_at"] >= current["voted_at"]:
            latest[election_id] = record

    for election_id, count in seen.items():
        if count > 1:
            latest[election_id]["is_revote"] = True

    # hasVoted entries without history still count as a participation
    for key, voted in (document.get("hasVoted") or {}).items():
        election_id = legacy_uuid(key)
        if voted and election_id not in latest:
            latest[election_id] = {
                "election_id": election_id,
                "candidate_id": None,
                "voted_at": fallback_time,
                "is_revote": False,
                "blockchain_tx_hash": None,
            }

    return sorted(latest.values(), key=lambda r: r["voted_at"])


def upgrade_legacy_voter(document: Dict[str, Any]) -> Dict[str, Any]:
    """
    Upgrade a legacy voter document to the current schema.

    Plaintext OTPs stored by old layouts are discarded.

    Returns:
        Dictionary of Voter column values plus a ``voting_history`` list
    """
    aadhaar_id = str(document.get("aadhaarId") or "")
    if not AADHAAR_RE.match(aadhaar_id):
        raise LegacyDocumentError("Legacy document has no valid 12-digit aadhaarId")

    version = detect_schema_version(document)
    created_at = parse_timestamp(document.get("createdAt")) or utcnow()

    is_verified = bool(document.get("isVerified", False))
    status = document.get("verificationStatus") or {}
    credentials = _upgrade_credentials(document, version)

    otp_verified = is_verified or bool(status.get("phone"))
    biometric_verified = is_verified or bool(status.get("fingerprint"))

    phone = document.get("phone")
    if phone is not None and not PHONE_RE.match(str(phone)):
        phone = None

    voter = {
        "id": legacy_uuid(document.get("_id")) or uuid.uuid4(),
        "schema_version": VOTER_SCHEMA_VERSION,
        "aadhaar_id": aadhaar_id,
        "name": document.get("name") or "Voter",
        "phone": phone,
        "fingerprint_hash": document.get("fingerprintHash"),
        "webauthn_credentials": credentials or None,
        "otp_verified": otp_verified,
        "biometric_verified": biometric_verified,
        "is_verified": otp_verified and biometric_verified,
        "biometric_attempts": int(document.get("loginAttempts") or 0),
        "lock_until": parse_timestamp(document.get("lockUntil")),
        "last_login_at": parse_timestamp(document.get("lastLogin")),
        "created_at": created_at,
        "voting_history": _upgrade_history(document, created_at),
    }
    return voter
