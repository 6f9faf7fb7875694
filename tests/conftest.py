#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Pytest configuration and fixtures for dotenv_guard tests.
"""

from typing import Callable, Dict, Iterator

import os

import pytest
from Cryptodome.Cipher import AES
from Cryptodome.Random import get_random_bytes
from Cryptodome.Util.Padding import pad

from dotenv_guard import (
    KeyStore,
    ValueCodec,
    CbcLegacyCodec,
    MissingLegacyCodec,
    MASTER_KEY_ENV_VAR,
    generate_master_key,
  )
from dotenv_guard.legacy import set_legacy_codec

LegacyEncryptor = Callable[[str], str]


@pytest.fixture(autouse=True)
def no_keychain() -> Iterator[None]:
  """Never touch a real OS keychain; the process-wide legacy codec is always the unavailable one."""
  set_legacy_codec(MissingLegacyCodec())
  yield
  set_legacy_codec(None)


@pytest.fixture
def work_dir(tmp_path, monkeypatch) -> str:
  """Run the test in an empty current directory."""
  monkeypatch.chdir(tmp_path)
  return str(tmp_path)


@pytest.fixture
def key_hex() -> str:
  return generate_master_key()


@pytest.fixture
def key_dir(tmp_path) -> str:
  return os.path.join(str(tmp_path), 'keys', '.dotenv-guard')


@pytest.fixture
def environ() -> Dict[str, str]:
  return {}


@pytest.fixture
def key_store(environ, key_dir) -> KeyStore:
  """A KeyStore isolated from the real environment and home directory."""
  return KeyStore(environ=environ, candidate_dirs=[key_dir])


@pytest.fixture
def codec(key_hex) -> ValueCodec:
  return ValueCodec(key=key_hex, legacy_codec=MissingLegacyCodec())


@pytest.fixture
def legacy_key_hex() -> str:
  return generate_master_key()


@pytest.fixture
def legacy_encrypt(legacy_key_hex) -> LegacyEncryptor:
  """Returns a function producing legacy <iv>:<data> AES-256-CBC values under legacy_key_hex."""
  def encrypt(plaintext: str) -> str:
    iv = get_random_bytes(16)
    cipher = AES.new(bytes.fromhex(legacy_key_hex), AES.MODE_CBC, iv=iv)
    data = cipher.encrypt(pad(plaintext.encode('utf-8'), AES.block_size))
    return f"{iv.hex()}:{data.hex()}"
  return encrypt


@pytest.fixture
def legacy_codec(legacy_key_hex) -> CbcLegacyCodec:
  return CbcLegacyCodec(lambda: legacy_key_hex)


@pytest.fixture
def legacy_aware_codec(key_hex, legacy_codec) -> ValueCodec:
  return ValueCodec(key=key_hex, legacy_codec=legacy_codec)


@pytest.fixture
def cli_env(work_dir, key_hex, monkeypatch) -> str:
  """An empty current directory with the master key supplied through the environment."""
  monkeypatch.setenv(MASTER_KEY_ENV_VAR, key_hex)
  return work_dir
