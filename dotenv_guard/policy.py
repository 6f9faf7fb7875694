#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Selective encryption policy: which configuration keys are encrypted and which stay plaintext.

The policy file (env.enc.json by default) is a JSON object:

    {
      "encrypt": [ "DATABASE_URL", "API_KEY" ],
      "plaintext": [ "PORT", "NODE_ENV" ]
    }

Either list may be omitted, but not both. A key named in "plaintext" is never encrypted,
even if it is also named in "encrypt".
"""

from typing import Iterable, List, Optional, Pattern

import json
import logging
import os
import re

from .constants import DEFAULT_ENV_FILE, DEFAULT_POLICY_FILE
from .exceptions import PolicyParseError
from .internal_types import JsonableDict
from .lines import read_env_file, iter_assignments

logger = logging.getLogger(__name__)

PUBLIC_KEY_PATTERNS: List[Pattern[str]] = [
    re.compile(r'^port$', re.IGNORECASE),
    re.compile(r'^host$', re.IGNORECASE),
    re.compile(r'^node_env$', re.IGNORECASE),
    re.compile(r'^env$', re.IGNORECASE),
    re.compile(r'^log_level$', re.IGNORECASE),
    re.compile(r'^debug$', re.IGNORECASE),
    re.compile(r'^verbose$', re.IGNORECASE),
    # prefixes whose values are shipped to browsers by frontend build tools
    re.compile(r'^vite_', re.IGNORECASE),
    re.compile(r'^next_public_', re.IGNORECASE),
    re.compile(r'^nuxt_public_', re.IGNORECASE),
    re.compile(r'^react_app_', re.IGNORECASE),
  ]
"""Key name patterns classified as plaintext by generate_policy(). Checked before SENSITIVE_KEY_PATTERNS."""

SENSITIVE_KEY_PATTERNS: List[Pattern[str]] = [
    re.compile(r'password', re.IGNORECASE),
    re.compile(r'secret', re.IGNORECASE),
    re.compile(r'key', re.IGNORECASE),
    re.compile(r'token', re.IGNORECASE),
    re.compile(r'auth', re.IGNORECASE),
    re.compile(r'credential', re.IGNORECASE),
    re.compile(r'private', re.IGNORECASE),
    re.compile(r'api_key', re.IGNORECASE),
    re.compile(r'database_url', re.IGNORECASE),
    re.compile(r'db_', re.IGNORECASE),
  ]
"""Key name patterns classified as encrypt by generate_policy()"""

class EncryptionPolicy:
  """A selective encryption policy: the keys that must be encrypted and the keys that must stay plaintext."""

  _encrypt: List[str]
  _plaintext: List[str]

  def __init__(self, encrypt: Optional[Iterable[str]]=None, plaintext: Optional[Iterable[str]]=None):
    self._encrypt = [] if encrypt is None else list(encrypt)
    self._plaintext = [] if plaintext is None else list(plaintext)

  @property
  def encrypt(self) -> List[str]:
    return list(self._encrypt)

  @property
  def plaintext(self) -> List[str]:
    return list(self._plaintext)

  def should_encrypt(self, key: str) -> bool:
    """Returns True if the value of key must be encrypted under this policy.

    A key in the plaintext list is never encrypted. Otherwise, if the encrypt list is
    non-empty, a key is encrypted iff it is in that list. If only the plaintext list is
    non-empty, or both are empty, every other key is encrypted.
    """
    if key in self._plaintext:
      return False
    if len(self._encrypt) > 0:
      return key in self._encrypt
    return True

  def to_jsonable(self) -> JsonableDict:
    return dict(encrypt=list(self._encrypt), plaintext=list(self._plaintext))

  def __eq__(self, other: object) -> bool:
    if not isinstance(other, EncryptionPolicy):
      return NotImplemented
    return set(self._encrypt) == set(other._encrypt) and set(self._plaintext) == set(other._plaintext)

  def __repr__(self) -> str:
    return f"EncryptionPolicy(encrypt={self._encrypt!r}, plaintext={self._plaintext!r})"

def should_encrypt(key: str, policy: Optional[EncryptionPolicy]) -> bool:
  """Returns True if the value of key must be encrypted. With no policy, every key is encrypted."""
  if policy is None:
    return True
  return policy.should_encrypt(key)

def parse_policy(text: str) -> EncryptionPolicy:
  """Parse the JSON text of a policy file.

  Raises:
      PolicyParseError: text is not valid JSON, not an object, or has neither "encrypt" nor "plaintext"
  """
  try:
    obj = json.loads(text)
  except json.JSONDecodeError as e:
    raise PolicyParseError(f"Failed to parse encryption policy: {e}") from e
  if not isinstance(obj, dict):
    raise PolicyParseError("Invalid encryption policy: expected a JSON object")
  if obj.get('encrypt') is None and obj.get('plaintext') is None:
    raise PolicyParseError('Invalid encryption policy: missing "encrypt" or "plaintext" arrays')
  encrypt = obj.get('encrypt')
  plaintext = obj.get('plaintext')
  return EncryptionPolicy(
      encrypt=[str(x) for x in encrypt] if isinstance(encrypt, list) else [],
      plaintext=[str(x) for x in plaintext] if isinstance(plaintext, list) else [],
    )

def load_policy(path: str=DEFAULT_POLICY_FILE) -> Optional[EncryptionPolicy]:
  """Load a selective encryption policy file.

  A malformed policy is not an error: a warning is logged and the result is the same
  as having no policy at all (every key encrypted).

  Args:
      path (str, optional): Path of the policy file. Defaults to "env.enc.json".

  Returns:
      Optional[EncryptionPolicy]: The policy, or None if the file is absent or malformed.
  """
  if not os.path.exists(path):
    return None
  try:
    with open(path, encoding='utf-8') as f:
      text = f.read()
    return parse_policy(text)
  except (PolicyParseError, OSError, UnicodeDecodeError) as e:
    logger.warning(f"{path}: {e}; encrypting all keys")
    return None

def classify_key(key: str) -> bool:
  """Heuristically decide whether a key looks sensitive. Returns True for encrypt, False for plaintext."""
  if any(pattern.search(key) for pattern in PUBLIC_KEY_PATTERNS):
    return False
  if any(pattern.search(key) for pattern in SENSITIVE_KEY_PATTERNS):
    return True
  # Unrecognized keys are encrypted
  return True

def generate_policy(env_file: str=DEFAULT_ENV_FILE) -> EncryptionPolicy:
  """Generate a policy for every key in a configuration file using key-name heuristics.

  Raises:
      SourceFileNotFoundError: env_file does not exist
  """
  content = read_env_file(env_file)
  encrypt: List[str] = []
  plaintext: List[str] = []
  for key, _ in iter_assignments(content):
    if key == '' or key in encrypt or key in plaintext:
      continue
    if classify_key(key):
      encrypt.append(key)
    else:
      plaintext.append(key)
  return EncryptionPolicy(encrypt=encrypt, plaintext=plaintext)

def save_policy(policy: EncryptionPolicy, path: str=DEFAULT_POLICY_FILE) -> str:
  """Write a policy as pretty-printed JSON, overwriting any existing file. Returns path."""
  with open(path, 'w', encoding='utf-8') as f:
    f.write(json.dumps(policy.to_jsonable(), indent=2) + '\n')
  return path
