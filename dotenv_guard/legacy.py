#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Read-only support for values encrypted by the legacy keychain-keyed AES-256-CBC scheme.

Legacy values have the form hex(iv_16_bytes) + ":" + hex(aes_cbc_encrypt(plaintext)), and were
encrypted with a key stored in the OS keychain. They carry no authentication tag. This package
never produces them; it can only decrypt them (when the `keyring` package is installed and the
keychain still holds the key) so they can be migrated to the current format.
"""

from typing import Callable, Optional
from types import ModuleType

import importlib
import logging

from Cryptodome.Cipher import AES
from Cryptodome.Util.Padding import unpad

from .constants import (
    ENCRYPTED_VALUE_SEPARATOR,
    LEGACY_IV_SIZE_BYTES,
    LEGACY_KEYCHAIN_SERVICE,
    LEGACY_KEYCHAIN_ACCOUNT,
  )
from .exceptions import (
    InvalidMasterKeyError,
    LegacyDependencyMissingError,
    LegacyFormatDetectedError,
  )
from .util import is_hex, key_from_hex

logger = logging.getLogger(__name__)

MIGRATION_HINT = (
    "Run `dotenv-guard migrate <file>` on a machine whose OS keychain still holds the legacy "
    "key to convert it to the current aes:<iv>:<authTag>:<data> format"
  )

LegacyKeyProvider = Callable[[], Optional[str]]
"""A function returning the hex-encoded legacy key, or None if there is none."""

def is_legacy_encrypted(value: str) -> bool:
  """Returns True iff value is structurally a legacy encrypted value.

  The test is structural: exactly one separator, a first segment of exactly
  32 hex characters (a 16-byte IV), and a non-empty hex second segment. The
  presence of a colon alone (e.g., a URL) is not sufficient.
  """
  if not isinstance(value, str) or value == '':
    return False
  parts = value.split(ENCRYPTED_VALUE_SEPARATOR)
  if len(parts) != 2:
    return False
  iv_hex, data_hex = parts
  return len(iv_hex) == LEGACY_IV_SIZE_BYTES * 2 and is_hex(iv_hex) and is_hex(data_hex)

class LegacyCodec:
  """Optional collaborator that decrypts legacy values. Resolved once per process by resolve_legacy_codec()."""

  @property
  def available(self) -> bool:
    raise NotImplementedError()

  def decrypt(self, value: str) -> str:
    """Decrypt a legacy value.

    Raises:
        LegacyFormatDetectedError: The value cannot be decrypted and must be migrated
        LegacyDependencyMissingError: Legacy support is not installed
    """
    raise NotImplementedError()

class CbcLegacyCodec(LegacyCodec):
  """Legacy codec that is available: decrypts AES-256-CBC values with a key from a key provider."""

  _key_provider: LegacyKeyProvider
  _key: Optional[bytes] = None

  def __init__(self, key_provider: LegacyKeyProvider):
    self._key_provider = key_provider

  @classmethod
  def from_keychain(cls, keyring_module: ModuleType) -> 'CbcLegacyCodec':
    """Create a codec whose key is read from the OS keychain through the `keyring` package."""
    def get_keychain_key() -> Optional[str]:
      try:
        return keyring_module.get_password(LEGACY_KEYCHAIN_SERVICE, LEGACY_KEYCHAIN_ACCOUNT)
      except Exception as e:
        raise LegacyFormatDetectedError(
            f"Legacy encrypted value found but the OS keychain could not be read ({e}). {MIGRATION_HINT}."
          ) from e
    return cls(get_keychain_key)

  @property
  def available(self) -> bool:
    return True

  def get_key(self) -> bytes:
    if self._key is None:
      key_hex = self._key_provider()
      if key_hex is None or key_hex == '':
        raise LegacyFormatDetectedError(
            f"Legacy encrypted value found but no legacy key exists in the OS keychain "
            f"(service '{LEGACY_KEYCHAIN_SERVICE}', account '{LEGACY_KEYCHAIN_ACCOUNT}'). {MIGRATION_HINT}."
          )
      try:
        self._key = key_from_hex(key_hex)
      except InvalidMasterKeyError as e:
        raise LegacyFormatDetectedError(f"Legacy key in the OS keychain is malformed: {e}. {MIGRATION_HINT}.") from e
    return self._key

  def decrypt(self, value: str) -> str:
    if not is_legacy_encrypted(value):
      raise LegacyFormatDetectedError("Value is not in the legacy <iv>:<data> format")
    iv_hex, data_hex = value.split(ENCRYPTED_VALUE_SEPARATOR)
    key = self.get_key()
    try:
      cipher = AES.new(key, AES.MODE_CBC, iv=bytes.fromhex(iv_hex))
      plaintext = unpad(cipher.decrypt(bytes.fromhex(data_hex)), AES.block_size).decode('utf-8')
    except ValueError as e:
      raise LegacyFormatDetectedError(
          f"Legacy encrypted value could not be decrypted with the legacy keychain key. {MIGRATION_HINT}."
        ) from e
    logger.warning("Decrypted a legacy-format value; run `dotenv-guard migrate` to convert it to the current format")
    return plaintext

class MissingLegacyCodec(LegacyCodec):
  """Legacy codec that is unavailable because the `keyring` package is not installed."""

  @property
  def available(self) -> bool:
    return False

  def decrypt(self, value: str) -> str:
    raise LegacyDependencyMissingError(
        "Legacy encrypted value found (format <iv>:<data>), but legacy support is not installed. "
        "To migrate: 1) pip install keyring (or pip install 'dotenv-guard[legacy]'); "
        "2) run `dotenv-guard migrate <file>`; 3) uninstall keyring again if it is no longer needed."
      )

_legacy_codec: Optional[LegacyCodec] = None

def resolve_legacy_codec() -> LegacyCodec:
  """Returns the process-wide legacy codec, deciding on first call whether `keyring` is importable."""
  global _legacy_codec
  if _legacy_codec is None:
    try:
      keyring_module = importlib.import_module('keyring')
    except ImportError:
      logger.debug("keyring is not installed; legacy-format values cannot be decrypted")
      _legacy_codec = MissingLegacyCodec()
    else:
      _legacy_codec = CbcLegacyCodec.from_keychain(keyring_module)
  return _legacy_codec

def set_legacy_codec(codec: Optional[LegacyCodec]) -> None:
  """Replace the process-wide legacy codec. None causes it to be resolved again on next use."""
  global _legacy_codec
  _legacy_codec = codec
