#!/usr/bin/env python3
#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Format-aware encryption/decryption of single configuration values"""

from typing import Optional, Union
from enum import Enum

from .constants import ENCRYPTED_VALUE_PREFIX, ENCRYPTED_VALUE_SEPARATOR
from .key_store import KeyStore, get_default_key_store
from .legacy import LegacyCodec, is_legacy_encrypted, resolve_legacy_codec
from .util import coerce_key, encrypt_string, decrypt_string

_TAG = ENCRYPTED_VALUE_PREFIX + ENCRYPTED_VALUE_SEPARATOR

class ValueFormat(Enum):
  """The at-rest format of a configuration value, determined by structural inspection"""

  PLAINTEXT = 'plaintext'
  """Not encrypted"""

  ENCRYPTED = 'encrypted'
  """Current format: aes:<ivHex>:<authTagHex>:<cipherHex> (AES-256-GCM)"""

  LEGACY = 'legacy'
  """Legacy format: <32-hex-char ivHex>:<cipherHex> (AES-256-CBC, keychain key). Read-only."""

def is_encrypted(value: str) -> bool:
  """Returns True iff value carries the current "aes:" format tag."""
  return isinstance(value, str) and value.startswith(_TAG)

def detect_format(value: str) -> ValueFormat:
  """Classify a value as current-encrypted, legacy-encrypted, or plaintext."""
  if is_encrypted(value):
    return ValueFormat.ENCRYPTED
  if is_legacy_encrypted(value):
    return ValueFormat.LEGACY
  return ValueFormat.PLAINTEXT

def encrypt_value(plaintext: str, key: Union[bytes, str]) -> str:
  """Encrypt a single value with AES-256-GCM and a fresh random nonce.

  Args:
      plaintext (str): The value to encrypt
      key (Union[bytes, str]): The 32-byte master key, raw or hex-encoded

  Returns:
      str: "aes:" + ivHex + ":" + authTagHex + ":" + cipherHex. Different on every call.
  """
  return encrypt_string(plaintext, key)

def decrypt_value(value: str, key: Union[bytes, str], legacy_codec: Optional[LegacyCodec]=None) -> str:
  """Decrypt a single value of any format.

  Args:
      value (str): A current-format, legacy-format, or plaintext value
      key (Union[bytes, str]): The 32-byte master key, raw or hex-encoded
      legacy_codec (Optional[LegacyCodec], optional):
                       The collaborator used for legacy-format values. If None, the
                       process-wide codec from resolve_legacy_codec() is used. Defaults to None.

  Raises:
      InvalidEncryptedFormatError: value carries the "aes:" tag but is malformed
      DecryptionAuthError: value failed authentication with key
      LegacyFormatDetectedError: value is legacy and could not be decrypted; it must be migrated
      LegacyDependencyMissingError: value is legacy and legacy support is not installed

  Returns:
      str: The plaintext. Plaintext values are returned unchanged.
  """
  return ValueCodec(key=key, legacy_codec=legacy_codec).decrypt(value)

class ValueCodec:
  """Encrypts and decrypts configuration values with a master key.

  The key is taken from an explicit value or from a KeyStore. A KeyStore is only asked to
  resolve (and possibly generate) the key when a current-format value is actually encrypted
  or decrypted, so plaintext-only operations never touch key storage.
  """

  _key: Optional[bytes] = None
  _key_store: Optional[KeyStore]
  _legacy_codec: LegacyCodec

  def __init__(
        self,
        key: Optional[Union[bytes, str]]=None,
        key_store: Optional[KeyStore]=None,
        legacy_codec: Optional[LegacyCodec]=None,
      ):
    """Create a value codec.

    Args:
        key (Optional[Union[bytes, str]], optional):
                              The 32-byte master key, raw or hex-encoded. If None, the key is
                              obtained from key_store. Defaults to None.
        key_store (Optional[KeyStore], optional):
                              The store the key is resolved from when key is None. If both are
                              None, the process-wide default KeyStore is used. Defaults to None.
        legacy_codec (Optional[LegacyCodec], optional):
                              The collaborator used for legacy-format values. If None, the
                              process-wide codec from resolve_legacy_codec() is used.
                              Defaults to None.
    """
    if key is not None:
      if key_store is not None:
        raise ValueError("Only one of key and key_store can be provided")
      self._key = coerce_key(key)
      self._key_store = None
    else:
      self._key_store = get_default_key_store() if key_store is None else key_store
    self._legacy_codec = resolve_legacy_codec() if legacy_codec is None else legacy_codec

  @property
  def key(self) -> bytes:
    """The 32-byte master key, resolved on first use"""
    if self._key is None:
      assert self._key_store is not None
      self._key = self._key_store.resolve_key_bytes()
    return self._key

  @property
  def legacy_codec(self) -> LegacyCodec:
    return self._legacy_codec

  def encrypt(self, plaintext: str) -> str:
    """Encrypt plaintext into the current "aes:" format with a fresh nonce."""
    assert isinstance(plaintext, str)
    return encrypt_string(plaintext, self.key)

  def decrypt(self, value: str) -> str:
    """Decrypt a value of any format. See decrypt_value() for errors raised."""
    assert isinstance(value, str)
    fmt = detect_format(value)
    if fmt is ValueFormat.ENCRYPTED:
      return decrypt_string(value, self.key)
    if fmt is ValueFormat.LEGACY:
      return self._legacy_codec.decrypt(value)
    return value

  def detect_format(self, value: str) -> ValueFormat:
    return detect_format(value)

_default_codec: Optional[ValueCodec] = None

def get_default_codec() -> ValueCodec:
  """Returns the process-wide ValueCodec backed by the default KeyStore and legacy codec."""
  global _default_codec
  if _default_codec is None:
    _default_codec = ValueCodec()
  return _default_codec
