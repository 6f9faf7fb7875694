#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Exceptions defined by this package"""

from typing import List, Optional, Sequence

from .constants import MASTER_KEY_ENV_VAR

class DotenvGuardError(Exception):
  """Base class for all error exceptions defined by this package."""
  #pass

class SourceFileNotFoundError(DotenvGuardError):
  """Exception indicating that a configuration, policy or schema file does not exist."""
  filename: str

  def __init__(self, filename: str, msg: Optional[str]=None):
    if msg is None:
      msg = f"{filename} not found"
    super().__init__(msg)
    self.filename = filename

class SourceFileDecodeError(DotenvGuardError):
  """Exception indicating that a configuration file is not valid UTF-8 text."""
  filename: str

  def __init__(self, filename: str, msg: Optional[str]=None):
    if msg is None:
      msg = f"{filename} is not valid UTF-8 text"
    super().__init__(msg)
    self.filename = filename

class KeyStorageUnavailableError(DotenvGuardError):
  """Exception indicating that no master key override is set and no key directory is writable."""

  def __init__(self, msg: Optional[str]=None):
    if msg is None:
      msg = ("No writable directory found for master key storage. "
             f"Please set the {MASTER_KEY_ENV_VAR} environment variable.")
    super().__init__(msg)

class InvalidMasterKeyError(DotenvGuardError):
  """Exception indicating that a master key is not a 64-character hex string."""
  #pass

class InvalidEncryptedFormatError(DotenvGuardError):
  """Exception indicating that a tagged encrypted value is structurally malformed."""
  #pass

class DecryptionAuthError(DotenvGuardError):
  """Exception indicating that an encrypted value failed authentication (wrong key or tampered data)."""
  #pass

class LegacyFormatDetectedError(DotenvGuardError):
  """Exception indicating a legacy-format value that could not be decrypted and must be migrated."""
  #pass

class LegacyDependencyMissingError(DotenvGuardError):
  """Exception indicating a legacy-format value when the OS keychain package is not installed."""
  #pass

class InvalidEnvironmentValueError(DotenvGuardError):
  """Exception indicating a key or value that cannot be stored in the process environment (e.g., an embedded NUL)."""
  #pass

class PolicyParseError(DotenvGuardError):
  """Exception indicating a malformed selective encryption policy. Treated as "no policy" by load_policy()."""
  #pass

class SchemaParseError(DotenvGuardError):
  """Exception indicating a malformed validation schema file."""
  #pass

class SchemaValidationFailedError(DotenvGuardError):
  """Exception carrying every violation found when validating an environment against a schema."""
  violations: List[str]

  def __init__(self, violations: Sequence[str]):
    self.violations = list(violations)
    super().__init__(f"validation failed: {'; '.join(self.violations)}")
