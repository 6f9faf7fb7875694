#!/usr/bin/env python3
#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""AES-256-GCM encryption/decryption of single string values"""

from typing import Optional, Union, cast

import string

from Cryptodome.Cipher import AES
from Cryptodome.Cipher._mode_gcm import GcmMode
from Cryptodome.Random import get_random_bytes

from .exceptions import InvalidEncryptedFormatError, DecryptionAuthError, InvalidMasterKeyError

from .constants import (
    KEY_SIZE_BYTES,
    KEY_SIZE_HEX,
    TAG_SIZE_BYTES,
    NONCE_SIZE_BYTES,
    ENCRYPTED_VALUE_PREFIX,
    ENCRYPTED_VALUE_SEPARATOR,
  )

_HEX_DIGITS = frozenset(string.hexdigits)

def is_hex(text: str) -> bool:
  """Returns True iff text is a non-empty string made only of hex digits (either case)."""
  return len(text) > 0 and all(c in _HEX_DIGITS for c in text)

def generate_nonce(n_bytes: int=NONCE_SIZE_BYTES) -> bytes:
  """Generate a cryptographically random nonce.

  Args:
      n_bytes (int, optional): The number of bytes to generate. Default is 12.

  Returns:
      bytes: n_bytes cryptographically random bytes
  """
  return get_random_bytes(n_bytes)

def generate_key() -> bytes:
  """Generate a cryptographically random 256-bit AES key.

  Returns:
      bytes: a cryptographically random 256-bit (32-byte) key
  """
  return get_random_bytes(KEY_SIZE_BYTES)

def generate_key_hex() -> str:
  """Generate a cryptographically random 256-bit AES key, hex-encoded.

  Returns:
      str: 64 lowercase hex characters
  """
  return generate_key().hex()

def key_from_hex(key_hex: str) -> bytes:
  """Convert a hex-encoded master key into raw key bytes.

  Args:
      key_hex (str): 64 hex characters. Surrounding whitespace is ignored.

  Raises:
      InvalidMasterKeyError: key_hex is not exactly 64 hex characters

  Returns:
      bytes: The 32-byte key
  """
  assert isinstance(key_hex, str)
  key_hex = key_hex.strip()
  if len(key_hex) != KEY_SIZE_HEX or not is_hex(key_hex):
    raise InvalidMasterKeyError(
        f"Master key must be {KEY_SIZE_HEX} hex characters ({KEY_SIZE_BYTES} bytes), got {len(key_hex)} characters"
      )
  return bytes.fromhex(key_hex)

def coerce_key(key: Union[bytes, str]) -> bytes:
  """Accept a master key as raw bytes or as a hex string, and return raw bytes.

  Raises:
      InvalidMasterKeyError: Wrong size key
  """
  if isinstance(key, str):
    return key_from_hex(key)
  assert isinstance(key, bytes)
  if len(key) != KEY_SIZE_BYTES:
    raise InvalidMasterKeyError(f"Wrong key size for AES-256, expected {KEY_SIZE_BYTES} bytes, got {len(key)}")
  return key

def encrypt_string(plaintext: str, key: Union[bytes, str], nonce: Optional[bytes]=None) -> str:
  """Encrypt a string using AES-256 GCM mode

  Encrypts the plaintext string, returning a ciphertext string of the form:

    "aes:" + hex(nonce) + ":" + hex(tag) + ":" + hex(aes_encrypt(plaintext.encode('utf-8')))

  Args:
      plaintext (str): A plaintext string to be encrypted
      key (Union[bytes, str]): A 256-bit (32-byte) symmetric AES key, raw or hex-encoded
      nonce (Optional[bytes], optional): An optional 12-byte nonce. If None, a random 12-byte
                                         nonce will be generated. Defaults to None. A nonce must
                                         never be reused with the same key.

  Raises:
      InvalidMasterKeyError: Wrong size key
      InvalidEncryptedFormatError: Wrong size nonce

  Returns:
      str: An encrypted representation of plaintext, which may be decrypted with decrypt_string().
  """
  assert isinstance(plaintext, str)
  bin_key = coerce_key(key)
  if nonce is None:
    nonce = generate_nonce()
  else:
    assert isinstance(nonce, bytes)
    if len(nonce) != NONCE_SIZE_BYTES:
      raise InvalidEncryptedFormatError(f"Nonce must be {NONCE_SIZE_BYTES} bytes in length")
  cipher = cast(GcmMode, AES.new(bin_key, AES.MODE_GCM, nonce=nonce, mac_len=TAG_SIZE_BYTES))
  ciphertext_data, tag = cipher.encrypt_and_digest(plaintext.encode('utf-8'))
  assert len(tag) == TAG_SIZE_BYTES
  sep = ENCRYPTED_VALUE_SEPARATOR
  return f"{ENCRYPTED_VALUE_PREFIX}{sep}{nonce.hex()}{sep}{tag.hex()}{sep}{ciphertext_data.hex()}"

def decrypt_string(ciphertext: str, key: Union[bytes, str]) -> str:
  """Decrypt a string previously encrypted with encrypt_string()

  Args:
      ciphertext (str): An encrypted string in the form:
                          "aes:" + hex(nonce) + ":" + hex(tag) + ":" +
                             hex(aes_encrypt(plaintext.encode('utf-8')))
      key (Union[bytes, str]): A 256-bit (32-byte) symmetric AES key, raw or hex-encoded

  Raises:
      InvalidMasterKeyError: Wrong size key
      InvalidEncryptedFormatError: Badly formed ciphertext
      DecryptionAuthError: Key is incorrect or ciphertext has been altered

  Returns:
      str: The original plaintext, as passed to encrypt_string
  """
  assert isinstance(ciphertext, str)
  bin_key = coerce_key(key)
  parts = ciphertext.split(ENCRYPTED_VALUE_SEPARATOR)
  if len(parts) != 4 or parts[0] != ENCRYPTED_VALUE_PREFIX:
    raise InvalidEncryptedFormatError("Invalid encrypted value format: expected aes:<iv>:<authTag>:<data>")
  _, nonce_hex, tag_hex, data_hex = parts
  if not is_hex(nonce_hex) or not is_hex(tag_hex) or (data_hex != '' and not is_hex(data_hex)):
    raise InvalidEncryptedFormatError("Invalid encrypted value format (non-hex)")
  try:
    nonce = bytes.fromhex(nonce_hex)
    tag = bytes.fromhex(tag_hex)
    ciphertext_data = bytes.fromhex(data_hex)
  except ValueError as e:
    raise InvalidEncryptedFormatError("Invalid encrypted value format (odd-length hex)") from e
  if len(nonce) != NONCE_SIZE_BYTES:
    raise InvalidEncryptedFormatError(f"Invalid initialization vector: expected {NONCE_SIZE_BYTES} bytes, got {len(nonce)}")
  if len(tag) != TAG_SIZE_BYTES:
    raise InvalidEncryptedFormatError(f"Invalid authentication tag: expected {TAG_SIZE_BYTES} bytes, got {len(tag)}")
  try:
    cipher = cast(GcmMode, AES.new(bin_key, AES.MODE_GCM, nonce=nonce, mac_len=TAG_SIZE_BYTES))
    bin_plaintext = cipher.decrypt_and_verify(ciphertext_data, tag)
    plaintext = bin_plaintext.decode('utf-8')
  except (ValueError, UnicodeDecodeError) as e:
    raise DecryptionAuthError("Encrypted value cannot be decrypted with the given key (authentication failed)") from e
  return plaintext
