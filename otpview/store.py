"""Credential store: the ordered records behind the viewer and their codes.

The store is the only place records are created, replaced or removed.  Every
successful mutation marks the store dirty and bumps ``generation`` so that
derived views know their cached rows are out of date.
"""
import binascii
import logging
import uuid as uuid_module
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote, urlencode

import qrcode

from otpview import otp
from otpview.errors import ComputationError, IndexOutOfRange
from otpview.vault import Db, Entry, Group, Info, DB_VERSION, read_vault_file, write_vault_file

logger = logging.getLogger(__name__)

OTP_TYPES = ("totp", "hotp", "steam", "motp")


@dataclass(frozen=True)
class CredentialRecord:
    issuer: str
    label: str
    secret: str
    type: str = "totp"
    algorithm: str = "SHA1"
    digits: int = 6
    period: int = otp.DEFAULT_PERIOD
    counter: int = 0
    pin: Optional[str] = None
    note: str = ""
    groups: Tuple[str, ...] = ()
    uuid: str = field(default_factory=lambda: str(uuid_module.uuid4()))
    # Round-tripped to the vault file; the viewer never reads them
    icon: Optional[str] = None
    icon_mime: Optional[str] = None
    icon_hash: Optional[str] = None
    favorite: bool = False

    @classmethod
    def from_entry(cls, entry: Entry) -> "CredentialRecord":
        info = entry.info or Info(secret="")
        return cls(
            issuer=entry.issuer or "",
            label=entry.name or "",
            secret=info.secret,
            type=entry.type.lower(),
            algorithm=info.algo or "SHA1",
            digits=info.digits,
            period=info.period or otp.DEFAULT_PERIOD,
            counter=info.counter or 0,
            pin=info.pin,
            note=entry.note or "",
            groups=tuple(entry.groups or ()),
            uuid=entry.uuid,
            icon=entry.icon,
            icon_mime=entry.icon_mime,
            icon_hash=entry.icon_hash,
            favorite=bool(entry.favorite),
        )

    def to_entry(self) -> Entry:
        info = Info(secret=self.secret, algo=self.algorithm, digits=self.digits)
        if self.type == "hotp":
            info.counter = self.counter
        else:
            info.period = self.period
        if self.type == "motp":
            info.pin = self.pin
        return Entry(
            type=self.type,
            uuid=self.uuid,
            name=self.label,
            issuer=self.issuer,
            note=self.note,
            info=info,
            groups=list(self.groups),
            icon=self.icon,
            icon_mime=self.icon_mime,
            icon_hash=self.icon_hash,
            favorite=self.favorite,
        )


def get_otp(record: CredentialRecord, seconds: Optional[float] = None):
    """Build the generator matching ``record.type``."""
    if record.type == "totp":
        return otp.generate_totp(record.secret, record.algorithm, record.digits, record.period, seconds)
    elif record.type == "hotp":
        return otp.generate_hotp(record.secret, record.algorithm, record.digits, record.counter)
    elif record.type == "steam":
        steam_seconds = int(seconds) if seconds is not None else None
        return otp.generate_steam_otp(record.secret, record.algorithm, record.digits, record.period, steam_seconds)
    elif record.type == "motp":
        motp_seconds = int(seconds) if seconds is not None else None
        secret_data = binascii.unhexlify(record.secret)
        return otp.generate_motp(secret_data, record.algorithm, record.digits, record.period, record.pin or "", motp_seconds)
    else:
        raise ValueError(f"Unsupported OTP type {record.type}")


def build_otpauth_uri(record: CredentialRecord) -> str:
    params = {
        "secret": record.secret,
        "algorithm": record.algorithm.upper(),
        "digits": record.digits,
    }
    if record.issuer:
        params["issuer"] = record.issuer
    if record.type == "hotp":
        params["counter"] = record.counter
    else:
        params["period"] = record.period
    if record.type == "motp" and record.pin:
        params["pin"] = record.pin

    account = f"{record.issuer}:{record.label}" if record.issuer else record.label
    return f"otpauth://{record.type}/{quote(account)}?{urlencode(params)}"


class CredentialStore:
    def __init__(self, records: Sequence[CredentialRecord] = (), groups: Sequence[Group] = ()):
        self._records: List[CredentialRecord] = list(records)
        self._groups: List[Group] = list(groups)
        self.dirty = False
        self.generation = 0
        self._visual_cache: Dict[Tuple[int, int], List[List[bool]]] = {}

    @classmethod
    def load(cls, path: str, password: Optional[str] = None) -> "CredentialStore":
        vault = read_vault_file(path, password)
        records = [CredentialRecord.from_entry(entry) for entry in vault.db.entries]
        logger.info(f"Loaded {len(records)} credentials from {path}")
        return cls(records, vault.db.groups)

    def save(self, path: str, password: Optional[str] = None) -> None:
        db = Db(
            version=DB_VERSION,
            entries=[record.to_entry() for record in self._records],
            groups=list(self._groups)
        )
        write_vault_file(path, db, password)
        self.dirty = False

    def __len__(self) -> int:
        return len(self._records)

    def elements(self) -> Tuple[CredentialRecord, ...]:
        return tuple(self._records)

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._records):
            raise IndexOutOfRange(index, len(self._records))

    def _mutated(self) -> None:
        self.dirty = True
        self.generation += 1

    def add(self, record: CredentialRecord) -> None:
        self._records.append(record)
        self._mutated()

    def edit(self, index: int, record: CredentialRecord) -> None:
        self._check_index(index)
        self._records[index] = record
        self._mutated()

    def delete(self, index: int) -> CredentialRecord:
        self._check_index(index)
        removed = self._records.pop(index)
        self._mutated()
        return removed

    def increment_counter(self, index: int) -> None:
        self._check_index(index)
        record = self._records[index]
        self._records[index] = replace(record, counter=record.counter + 1)
        self._mutated()

    def decrement_counter(self, index: int) -> None:
        self._check_index(index)
        record = self._records[index]
        self._records[index] = replace(record, counter=max(0, record.counter - 1))
        self._mutated()

    def current_code(self, index: int, seconds: Optional[float] = None) -> str:
        self._check_index(index)
        record = self._records[index]
        try:
            return get_otp(record, seconds).string()
        except (ValueError, TypeError, binascii.Error) as e:
            raise ComputationError(f"Cannot compute code for {record.issuer} {record.label}: {e}") from e

    def otpauth_uri(self, index: int) -> str:
        self._check_index(index)
        return build_otpauth_uri(self._records[index])

    def visual_code(self, index: int) -> List[List[bool]]:
        """QR module matrix for the record's otpauth URI, border included.

        Matrices are cached per (index, generation), so redrawing the QR page
        does not re-encode until the store changes.
        """
        key = (index, self.generation)
        if key in self._visual_cache:
            return self._visual_cache[key]
        qr = qrcode.QRCode(border=2, error_correction=qrcode.constants.ERROR_CORRECT_L)
        qr.add_data(self.otpauth_uri(index))
        qr.make(fit=True)
        self._visual_cache = {key: qr.get_matrix()}
        return self._visual_cache[key]
