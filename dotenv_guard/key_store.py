#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Resolution and persistence of the 256-bit master key"""

from typing import List, Mapping, Optional, Sequence

import logging
import os
import tempfile

from .constants import (
    KEY_DIR_MODE,
    KEY_DIR_NAME,
    KEY_FILE_MODE,
    MASTER_KEY_ENV_VAR,
    MASTER_KEY_FILE,
    WRITE_PROBE_FILE,
  )
from .exceptions import KeyStorageUnavailableError, InvalidMasterKeyError
from .util import generate_key_hex, key_from_hex

logger = logging.getLogger(__name__)

def generate_master_key() -> str:
  """Generate a new hex-encoded 256-bit master key (64 hex characters)."""
  return generate_key_hex()

def default_candidate_dirs() -> List[str]:
  """Returns the prioritized list of directories that may hold the master key file.

  In order: ~/.dotenv-guard (omitted if the home directory is unknown or is "/"),
  ./.dotenv-guard in the current working directory, and .dotenv-guard in the OS
  temp directory (a last resort for containers and serverless runtimes).
  """
  result: List[str] = []
  home_dir = os.path.expanduser('~')
  if home_dir not in ('', '~', '/'):
    result.append(os.path.join(home_dir, KEY_DIR_NAME))
  result.append(os.path.join(os.getcwd(), KEY_DIR_NAME))
  result.append(os.path.join(tempfile.gettempdir(), KEY_DIR_NAME))
  return result

def is_writable_dir(dirname: str) -> bool:
  """Returns True if dirname exists (or can be created) and a file can actually be written in it.

  Creates the directory with owner-only permissions if it does not exist.
  """
  try:
    os.makedirs(dirname, mode=KEY_DIR_MODE, exist_ok=True)
    probe_file = os.path.join(dirname, WRITE_PROBE_FILE)
    with open(probe_file, 'w', encoding='utf-8') as f:
      f.write('test')
    os.unlink(probe_file)
  except OSError as e:
    logger.debug(f"Key directory candidate {dirname} is not writable: {e}")
    return False
  return True

class KeyStore:
  """Resolves the process-wide master key.

  Resolution order:
    1. The DOTENV_GUARD_MASTER_KEY environment variable, if set (CI, containers, read-only disks).
    2. master.key in the first writable candidate directory that has one.
    3. A freshly generated key, persisted to the first writable candidate directory with
       owner-only permissions.

  The resolved key is cached, so a KeyStore resolves at most once. Concurrent first use from
  several processes can race and persist different keys; provision the key once (e.g., at
  deploy time) before starting concurrent processes.
  """

  _environ: Mapping[str, str]
  _candidate_dirs: Optional[List[str]]
  _env_var: str
  _key_hex: Optional[str] = None
  _key_path: Optional[str] = None
  _source: Optional[str] = None

  def __init__(
        self,
        environ: Optional[Mapping[str, str]]=None,
        candidate_dirs: Optional[Sequence[str]]=None,
        env_var: str=MASTER_KEY_ENV_VAR,
      ):
    """Create a master key store.

    Args:
        environ (Optional[Mapping[str, str]], optional):
                              The environment in which the override variable is looked up.
                              If None, os.environ is used. Defaults to None.
        candidate_dirs (Optional[Sequence[str]], optional):
                              Prioritized directories that may hold the key file. If None,
                              default_candidate_dirs() is evaluated at resolution time.
                              Defaults to None.
        env_var (str, optional):
                              Name of the override environment variable. Defaults to
                              DOTENV_GUARD_MASTER_KEY.
    """
    self._environ = os.environ if environ is None else environ
    self._candidate_dirs = None if candidate_dirs is None else list(candidate_dirs)
    self._env_var = env_var

  @property
  def env_var(self) -> str:
    return self._env_var

  @property
  def candidate_dirs(self) -> List[str]:
    if self._candidate_dirs is None:
      return default_candidate_dirs()
    return list(self._candidate_dirs)

  @property
  def key_path(self) -> Optional[str]:
    """Path of the key file the resolved key was read from or written to. None if unresolved or from the environment."""
    return self._key_path

  @property
  def source(self) -> Optional[str]:
    """How the key was resolved: "environment", "file", "generated", or None if not yet resolved."""
    return self._source

  def get_override(self) -> Optional[str]:
    override = self._environ.get(self._env_var, '')
    return None if override == '' else override

  def find_key_file(self) -> Optional[str]:
    """Returns the path of an existing key file in any candidate directory, without creating anything."""
    for dirname in self.candidate_dirs:
      key_path = os.path.join(dirname, MASTER_KEY_FILE)
      if os.path.isfile(key_path):
        return key_path
    return None

  def exists(self) -> bool:
    """Returns True if an override is set or a key file exists. Never generates a key."""
    return self.get_override() is not None or self.find_key_file() is not None

  def resolve_key(self) -> str:
    """Returns the hex-encoded master key, generating and persisting one on first use.

    Raises:
        KeyStorageUnavailableError: No override is set and no candidate directory is writable
        InvalidMasterKeyError: The override or the persisted key is not 64 hex characters

    Returns:
        str: 64 hex characters
    """
    if self._key_hex is None:
      override = self.get_override()
      if override is not None:
        key_hex = override.strip()
        self._check_key(key_hex, f"environment variable {self._env_var}")
        self._key_hex = key_hex
        self._source = 'environment'
      else:
        first_writable: Optional[str] = None
        for dirname in self.candidate_dirs:
          key_path = os.path.join(dirname, MASTER_KEY_FILE)
          # past the first writable directory, only directories that already hold a key are probed
          if first_writable is not None and not os.path.isfile(key_path):
            continue
          if not is_writable_dir(dirname):
            continue
          if first_writable is None:
            first_writable = dirname
          if os.path.isfile(key_path):
            with open(key_path, encoding='utf-8') as f:
              key_hex = f.read().strip()
            self._check_key(key_hex, key_path)
            self._key_hex = key_hex
            self._key_path = key_path
            self._source = 'file'
            logger.debug(f"Using master key from {key_path}")
            break
        else:
          if first_writable is None:
            raise KeyStorageUnavailableError(
                "Cannot generate master key: no writable directory found. "
                f"Please set the {self._env_var} environment variable."
              )
          key_hex = generate_master_key()
          self._key_path = self.save_key(key_hex, first_writable)
          self._key_hex = key_hex
          self._source = 'generated'
          logger.info(f"Generated a new master key at {self._key_path}; back it up, it cannot be recovered")
    return self._key_hex

  def resolve_key_bytes(self) -> bytes:
    """Returns the resolved master key as 32 raw bytes."""
    return key_from_hex(self.resolve_key())

  def save_key(self, key_hex: str, dirname: Optional[str]=None) -> str:
    """Persist a master key with owner-only permissions.

    Args:
        key_hex (str): The hex-encoded key to save
        dirname (Optional[str], optional): The directory to save into. If None, the first
                        writable candidate directory is used. Defaults to None.

    Raises:
        KeyStorageUnavailableError: dirname is None and no candidate directory is writable

    Returns:
        str: The path of the written key file
    """
    self._check_key(key_hex, "key to save")
    if dirname is None:
      for candidate in self.candidate_dirs:
        if is_writable_dir(candidate):
          dirname = candidate
          break
      else:
        raise KeyStorageUnavailableError()
    else:
      os.makedirs(dirname, mode=KEY_DIR_MODE, exist_ok=True)
    key_path = os.path.join(dirname, MASTER_KEY_FILE)
    fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, KEY_FILE_MODE)
    with os.fdopen(fd, 'w', encoding='utf-8') as f:
      f.write(key_hex)
    # O_CREAT mode is masked by umask and ignored for existing files
    os.chmod(key_path, KEY_FILE_MODE)
    return key_path

  @staticmethod
  def _check_key(key_hex: str, where: str) -> None:
    try:
      key_from_hex(key_hex)
    except InvalidMasterKeyError as e:
      raise InvalidMasterKeyError(f"Invalid master key in {where}: {e}") from e

_default_key_store: Optional[KeyStore] = None

def get_default_key_store() -> KeyStore:
  """Returns the process-wide KeyStore that reads os.environ and the default candidate directories."""
  global _default_key_store
  if _default_key_store is None:
    _default_key_store = KeyStore()
  return _default_key_store
