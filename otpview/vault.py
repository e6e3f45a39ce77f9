import os
import re
import json
import base64
import binascii
import logging
import tempfile
import uuid
from dataclasses import dataclass, field, is_dataclass, asdict
from typing import List, Optional, Union, get_origin, get_args

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.backends import default_backend

from otpview.errors import VaultError

logger = logging.getLogger(__name__)

VAULT_VERSION = 1
DB_VERSION = 2

# Scrypt parameters used for newly written password slots
KDF_SALT_LENGTH = 32
KDF_N = 32768
KDF_R = 8
KDF_P = 1
KEY_LENGTH = 32  # AES-256
NONCE_LENGTH = 12
TAG_LENGTH = 16

SLOT_TYPE_PASSWORD = 1

@dataclass
class Params:
    nonce: str
    tag: str

@dataclass
class Slot:
    type: int
    uuid: str
    key: str
    key_params: Params = field(metadata={"field_name": "key_params"})
    n: Optional[int] = None
    r: Optional[int] = None
    p: Optional[int] = None
    salt: Optional[str] = None
    repaired: bool = False
    is_backup: bool = field(default=False, metadata={"field_name": "is_backup"})

@dataclass
class Header:
    slots: Optional[List[Slot]] = None
    params: Optional[Params] = None

@dataclass
class Info:
    secret: str
    algo: str = "SHA1"
    digits: int = 6
    period: Optional[int] = None
    counter: Optional[int] = None
    pin: Optional[str] = None

@dataclass
class Entry:
    type: str
    uuid: str
    name: str
    issuer: str
    note: str = ""
    icon: Optional[str] = None
    icon_mime: Optional[str] = field(default=None, metadata={"field_name": "icon_mime"})
    icon_hash: Optional[str] = field(default=None, metadata={"field_name": "icon_hash"})
    favorite: bool = False
    info: Optional[Info] = None
    groups: List[str] = field(default_factory=list)

@dataclass
class Group:
    uuid: str
    name: str

@dataclass
class Db:
    version: int
    entries: List[Entry]
    groups: List[Group] = field(default_factory=list)

@dataclass
class Vault:
    version: int
    header: Header
    db: Db

@dataclass
class VaultEncrypted:
    version: int
    header: Header
    db: str

    def find_master_key(self, pwd: str) -> bytes:
        master_key = b""
        for slot in self.header.slots or []:
            if slot.type != SLOT_TYPE_PASSWORD:  # Only consider password-based slots
                continue

            try:
                salt = binascii.unhexlify(slot.salt)

                kdf = Scrypt(
                    salt=salt,
                    length=KEY_LENGTH,
                    n=slot.n,
                    r=slot.r,
                    p=slot.p,
                    backend=default_backend()
                )
                key = kdf.derive(pwd.encode('utf-8'))

                nonce = binascii.unhexlify(slot.key_params.nonce)
                tag = binascii.unhexlify(slot.key_params.tag)
                slot_key_encrypted = binascii.unhexlify(slot.key)

                cipher = Cipher(algorithms.AES(key), modes.GCM(nonce, tag), backend=default_backend())
                decryptor = cipher.decryptor()
                master_key = decryptor.update(slot_key_encrypted) + decryptor.finalize()

                if master_key:
                    break
            except (InvalidTag, ValueError, TypeError) as e:
                logger.debug(f"Could not decrypt slot {slot.uuid}: {e}")
                continue

        if not master_key:
            raise VaultError("No master key found or unable to decrypt with provided password.")
        return master_key

    def decrypt_contents(self, master_key: bytes) -> bytes:
        params = self.header.params

        nonce = binascii.unhexlify(params.nonce)
        tag = binascii.unhexlify(params.tag)
        db_data_encrypted = base64.b64decode(self.db)

        cipher = Cipher(algorithms.AES(master_key), modes.GCM(nonce, tag), backend=default_backend())
        decryptor = cipher.decryptor()
        try:
            return decryptor.update(db_data_encrypted) + decryptor.finalize()
        except InvalidTag as e:
            raise VaultError("Vault contents failed authentication.") from e

    def decrypt_vault(self, master_key: bytes) -> Vault:
        content = self.decrypt_contents(master_key)
        db = deserialize_db(json.loads(content.decode('utf-8')))
        return Vault(version=self.version, header=self.header, db=db)

# Helper to deserialize JSON into dataclasses
def from_dict(cls, data):
    if isinstance(data, list):
        return [from_dict(cls, item) for item in data]
    if not isinstance(data, dict):
        return data

    # Handle field_name metadata for fields that differ from JSON keys
    field_names = {f.metadata.get("field_name", f.name): f.name for f in cls.__dataclass_fields__.values()}

    init_args = {}
    for json_key, field_name in field_names.items():
        if json_key not in data:
            continue
        field_type = cls.__dataclass_fields__[field_name].type
        origin = get_origin(field_type)
        args = get_args(field_type)

        if origin is list:
            init_args[field_name] = [from_dict(args[0], item) for item in data[json_key]]
        elif origin is Union and type(None) in args:
            # Optional[X]: recurse only when X is a dataclass or a list of them
            non_none_args = [arg for arg in args if arg is not type(None)]
            inner = non_none_args[0] if non_none_args else None
            if data[json_key] is None:
                init_args[field_name] = None
            elif is_dataclass(inner):
                init_args[field_name] = from_dict(inner, data[json_key])
            elif get_origin(inner) is list:
                init_args[field_name] = [from_dict(get_args(inner)[0], item) for item in data[json_key]]
            else:
                init_args[field_name] = data[json_key]
        elif is_dataclass(field_type):
            init_args[field_name] = from_dict(field_type, data[json_key])
        else:
            init_args[field_name] = data[json_key]
    return cls(**init_args)

def deserialize_db(data: dict) -> Db:
    return Db(
        version=data.get('version', DB_VERSION),
        entries=[from_dict(Entry, e) for e in data.get('entries', [])],
        groups=[from_dict(Group, g) for g in data.get('groups', [])]
    )

def deserialize_vault_encrypted(data: dict) -> VaultEncrypted:
    return VaultEncrypted(
        version=data['version'],
        header=from_dict(Header, data['header']),
        db=data['db']
    )

def deserialize_vault(data: dict) -> Vault:
    return Vault(
        version=data['version'],
        header=from_dict(Header, data.get('header') or {}),
        db=deserialize_db(data['db'])
    )

def is_encrypted(data: dict) -> bool:
    return isinstance(data.get('db'), str)

def find_vault_path(vault_dir: str) -> Optional[str]:
    try:
        files = os.listdir(vault_dir)
    except OSError:
        return None

    vault_file_re = re.compile(r"^aegis-(backup|export)-\d+(-\d+)*\.json$")
    vault_files = []
    for f_name in files:
        if vault_file_re.match(f_name):
            full_path = os.path.join(vault_dir, f_name)
            if os.path.isfile(full_path):
                vault_files.append(full_path)

    if not vault_files:
        return None

    # Most recently modified file wins
    return max(vault_files, key=os.path.getmtime)

def read_vault_json(file_path: str) -> dict:
    try:
        with open(file_path, 'r') as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise VaultError(f"Could not read vault file {file_path}: {e}") from e

def read_vault_file(file_path: str, pwd: Optional[str] = None) -> Vault:
    """Read a vault file, decrypting it with ``pwd`` when it is encrypted."""
    data = read_vault_json(file_path)
    try:
        if not is_encrypted(data):
            return deserialize_vault(data)
        if pwd is None:
            raise VaultError(f"Vault {file_path} is encrypted and no password was given.")
        vault_enc = deserialize_vault_encrypted(data)
        master_key = vault_enc.find_master_key(pwd)
        return vault_enc.decrypt_vault(master_key)
    except (KeyError, TypeError) as e:
        raise VaultError(f"Malformed vault file {file_path}: {e}") from e

def encrypt_vault(db: Db, password: str) -> VaultEncrypted:
    """Encrypt ``db`` under a fresh master key wrapped by a password slot."""
    master_key = os.urandom(KEY_LENGTH)

    db_json = json.dumps(asdict(db)).encode('utf-8')
    db_nonce = os.urandom(NONCE_LENGTH)
    db_sealed = AESGCM(master_key).encrypt(db_nonce, db_json, None)
    db_cipher, db_tag = db_sealed[:-TAG_LENGTH], db_sealed[-TAG_LENGTH:]

    kdf_salt = os.urandom(KDF_SALT_LENGTH)
    kdf = Scrypt(salt=kdf_salt, length=KEY_LENGTH, n=KDF_N, r=KDF_R, p=KDF_P, backend=default_backend())
    password_key = kdf.derive(password.encode('utf-8'))

    key_nonce = os.urandom(NONCE_LENGTH)
    key_sealed = AESGCM(password_key).encrypt(key_nonce, master_key, None)
    key_cipher, key_tag = key_sealed[:-TAG_LENGTH], key_sealed[-TAG_LENGTH:]

    slot = Slot(
        type=SLOT_TYPE_PASSWORD,
        uuid=str(uuid.uuid4()),
        key=binascii.hexlify(key_cipher).decode('utf-8'),
        key_params=Params(
            nonce=binascii.hexlify(key_nonce).decode('utf-8'),
            tag=binascii.hexlify(key_tag).decode('utf-8')
        ),
        n=KDF_N,
        r=KDF_R,
        p=KDF_P,
        salt=binascii.hexlify(kdf_salt).decode('utf-8'),
    )
    header = Header(
        slots=[slot],
        params=Params(
            nonce=binascii.hexlify(db_nonce).decode('utf-8'),
            tag=binascii.hexlify(db_tag).decode('utf-8')
        )
    )
    return VaultEncrypted(
        version=VAULT_VERSION,
        header=header,
        db=base64.b64encode(db_cipher).decode('utf-8')
    )

def write_vault_file(file_path: str, db: Db, password: Optional[str] = None) -> None:
    """Write ``db`` to ``file_path``; encrypted when a password is given."""
    if password:
        payload = asdict(encrypt_vault(db, password))
    else:
        payload = asdict(Vault(version=VAULT_VERSION, header=Header(), db=db))

    directory = os.path.dirname(os.path.abspath(file_path))
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".otpview-", suffix=".json")
    try:
        with os.fdopen(fd, 'w') as f:
            json.dump(payload, f, indent=4)
        os.replace(tmp_path, file_path)
    except OSError as e:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise VaultError(f"Could not write vault file {file_path}: {e}") from e
    logger.info(f"Vault written to {file_path}")
