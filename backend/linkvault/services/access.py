import enum
from datetime import datetime
from typing import Callable, Optional

from linkvault.core.errors import CredentialRejected, Exhausted, Expired, NeedsCredential, VaultError
from linkvault.core.security import verify_secret
from linkvault.models.upload import UploadRecord


class Decision(str, enum.Enum):
    allow = "allow"
    expired = "expired"
    exhausted = "exhausted"
    needs_credential = "needs_credential"
    credential_rejected = "credential_rejected"


_DENIALS = {
    Decision.expired: Expired,
    Decision.exhausted: Exhausted,
    Decision.needs_credential: NeedsCredential,
    Decision.credential_rejected: CredentialRejected,
}


def evaluate(
    record: UploadRecord,
    supplied_credential: Optional[str],
    now: datetime,
    verify: Callable[[str, str], bool] = verify_secret,
) -> Decision:
    """
    Decide whether `record` may be viewed right now.

    Checks run in a fixed order and the first match wins: expiry, view budget,
    missing credential, wrong credential. Pure: no store or blob access, no
    mutation. An empty credential counts as absent.
    """
    if record.is_expired(now):
        return Decision.expired
    if record.view_limit is not None and int(record.view_count or 0) >= int(record.view_limit):
        return Decision.exhausted
    if record.credential_digest:
        if not supplied_credential:
            return Decision.needs_credential
        if not verify(supplied_credential, record.credential_digest):
            return Decision.credential_rejected
    return Decision.allow


def denial_error(decision: Decision) -> VaultError:
    return _DENIALS[decision]()
