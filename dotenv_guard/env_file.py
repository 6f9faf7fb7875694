#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Whole-file encryption, decryption and migration of .env files, and injection into the environment.

Every operation reads the entire file, transforms it in memory, and only then writes the
entire result, so a value that fails to decrypt aborts the operation before anything is
written. Blank lines, comments and lines without "=" are passed through unchanged.
"""

from typing import Dict, List, Optional
from enum import Enum

import logging
import os

from .constants import DEFAULT_POLICY_FILE
from .exceptions import InvalidEnvironmentValueError
from .internal_types import EnvironmentSink
from .lines import (
    read_env_file,
    write_env_file,
    split_lines,
    join_lines,
    parse_line,
    format_assignment,
    iter_assignments,
  )
from .policy import EncryptionPolicy, load_policy, should_encrypt
from .value_codec import ValueCodec, ValueFormat, detect_format, get_default_codec

logger = logging.getLogger(__name__)

class EncryptionMode(Enum):
  """The desired at-rest state of a configuration file after it is loaded"""

  ENCRYPTED = 'encrypted'
  """Values selected by the policy are encrypted in the file"""

  PLAINTEXT = 'plaintext'
  """The file holds no encrypted values"""

  @classmethod
  def from_enc_flag(cls, enc: bool) -> 'EncryptionMode':
    return cls.ENCRYPTED if enc else cls.PLAINTEXT

class EncryptResult:
  """The outcome of encrypt_file()"""

  path: str
  """The path the encrypted content was written to"""

  encrypted: int
  """Number of assignments whose values are encrypted in the output"""

  plaintext: int
  """Number of assignments whose values are left as plaintext in the output"""

  content: str
  """The transformed file content"""

  def __init__(self, path: str, encrypted: int, plaintext: int, content: str=''):
    self.path = path
    self.encrypted = encrypted
    self.plaintext = plaintext
    self.content = content

  def __repr__(self) -> str:
    return f"EncryptResult(path={self.path!r}, encrypted={self.encrypted}, plaintext={self.plaintext})"

def _get_codec(codec: Optional[ValueCodec]) -> ValueCodec:
  return get_default_codec() if codec is None else codec

def _get_policy(policy_path: Optional[str], policy: Optional[EncryptionPolicy]) -> Optional[EncryptionPolicy]:
  if policy is not None:
    return policy
  if policy_path is None:
    return None
  return load_policy(policy_path)

def encrypt_content(
      content: str,
      policy: Optional[EncryptionPolicy]=None,
      codec: Optional[ValueCodec]=None,
    ) -> EncryptResult:
  """Encrypt the values of configuration file content according to a policy.

  Returns an EncryptResult whose path is empty and whose content is the transformed text.
  """
  codec = _get_codec(codec)
  output: List[str] = []
  n_encrypted = 0
  n_plaintext = 0
  for line in split_lines(content):
    kv = parse_line(line)
    if kv is None:
      output.append(line)
      continue
    key, value = kv
    fmt = detect_format(value)
    if fmt is ValueFormat.ENCRYPTED:
      output.append(format_assignment(key, value))
      n_encrypted += 1
      continue
    if fmt is ValueFormat.LEGACY:
      # Legacy ciphertext is never re-encrypted as if it were plaintext
      value = codec.decrypt(value)
    if should_encrypt(key, policy):
      value = codec.encrypt(value)
      n_encrypted += 1
    else:
      n_plaintext += 1
    output.append(format_assignment(key, value))
  return EncryptResult('', n_encrypted, n_plaintext, content=join_lines(output))

def encrypt_file(
      path: str,
      output_path: Optional[str]=None,
      policy_path: Optional[str]=DEFAULT_POLICY_FILE,
      codec: Optional[ValueCodec]=None,
      policy: Optional[EncryptionPolicy]=None,
    ) -> EncryptResult:
  """Encrypt the values of a configuration file in place (or into another file).

  Values already in the current encrypted format are left untouched, so encrypting an
  already-encrypted file is a no-op. Legacy-format values are decrypted and re-disposed
  according to the policy.

  Args:
      path (str):           The configuration file to encrypt
      output_path (Optional[str], optional):
                            Where to write the result. If None, path is overwritten.
                            Defaults to None.
      policy_path (Optional[str], optional):
                            The selective encryption policy file. If the file is absent or
                            malformed, or policy_path is None, every value is encrypted.
                            Defaults to "env.enc.json".
      codec (Optional[ValueCodec], optional):
                            The value codec. If None, the process-wide codec is used.
                            Defaults to None.
      policy (Optional[EncryptionPolicy], optional):
                            An already-loaded policy, used instead of policy_path.
                            Defaults to None.

  Raises:
      SourceFileNotFoundError: path does not exist
      DotenvGuardError: a value could not be decrypted or encrypted; nothing is written

  Returns:
      EncryptResult: The output path and counts of encrypted and plaintext keys
  """
  content = read_env_file(path)
  enc_policy = _get_policy(policy_path, policy)
  result = encrypt_content(content, policy=enc_policy, codec=codec)
  out_path = path if output_path is None else output_path
  write_env_file(out_path, result.content)
  result.path = out_path
  logger.info(f"{out_path}: Encrypted: {result.encrypted} keys, Plaintext: {result.plaintext} keys")
  return result

def decrypt_content(content: str, codec: Optional[ValueCodec]=None) -> str:
  """Decrypt every encrypted value (current or legacy) in configuration file content."""
  codec = _get_codec(codec)
  output: List[str] = []
  for line in split_lines(content):
    kv = parse_line(line)
    if kv is None:
      output.append(line)
      continue
    key, value = kv
    output.append(format_assignment(key, codec.decrypt(value)))
  return join_lines(output)

def decrypt_file(path: str, codec: Optional[ValueCodec]=None) -> str:
  """Decrypt every encrypted value in a configuration file and return the plaintext content.

  The file itself is not modified; writing the result back is up to the caller.

  Raises:
      SourceFileNotFoundError: path does not exist
      DotenvGuardError: a value could not be decrypted
  """
  return decrypt_content(read_env_file(path), codec=codec)

def migrate_file(path: str, output_path: Optional[str]=None, codec: Optional[ValueCodec]=None) -> int:
  """Re-encrypt every legacy-format value in a configuration file into the current format.

  All other lines, including current-format and plaintext values, are left byte-for-byte
  unchanged. The file is only written if at least one value was migrated, or if
  output_path is given.

  Raises:
      SourceFileNotFoundError: path does not exist
      LegacyFormatDetectedError: a legacy value could not be decrypted
      LegacyDependencyMissingError: legacy support is not installed

  Returns:
      int: The number of values migrated
  """
  codec = _get_codec(codec)
  content = read_env_file(path)
  output: List[str] = []
  n_migrated = 0
  for line in split_lines(content):
    kv = parse_line(line)
    if kv is not None and detect_format(kv[1]) is ValueFormat.LEGACY:
      key, value = kv
      output.append(format_assignment(key, codec.encrypt(codec.decrypt(value))))
      n_migrated += 1
    else:
      output.append(line)
  if n_migrated > 0 or output_path is not None:
    out_path = path if output_path is None else output_path
    write_env_file(out_path, join_lines(output))
    logger.info(f"{out_path}: migrated {n_migrated} legacy values")
  return n_migrated

def file_has_encrypted_value(content: str) -> bool:
  """Returns True if any assignment in content holds a current- or legacy-format encrypted value."""
  for _, value in iter_assignments(content):
    if detect_format(value) is not ValueFormat.PLAINTEXT:
      return True
  return False

def parse_env(content: str, codec: Optional[ValueCodec]=None) -> Dict[str, str]:
  """Parse configuration file content into a dict of plaintext values.

  Assignments with an empty key are skipped. When a key appears more than once, the last
  assignment wins.
  """
  codec = _get_codec(codec)
  result: Dict[str, str] = {}
  for key, value in iter_assignments(content):
    if key == '':
      continue
    result[key] = codec.decrypt(value)
  return result

def inject_into_environment(
      content: str,
      sink: Optional[EnvironmentSink]=None,
      codec: Optional[ValueCodec]=None,
    ) -> Dict[str, str]:
  """Decrypt the values in configuration file content and write them into an environment.

  Every value is decrypted and checked before anything is written, so a failure leaves
  sink untouched.

  Args:
      content (str):        Configuration file content
      sink (Optional[EnvironmentSink], optional):
                            The mapping to write into. If None, os.environ is used.
                            Defaults to None.
      codec (Optional[ValueCodec], optional):
                            The value codec. If None, the process-wide codec is used.
                            Defaults to None.

  Raises:
      InvalidEnvironmentValueError: a key or value contains a NUL character
      DotenvGuardError: a value could not be decrypted

  Returns:
      Dict[str, str]: The plaintext key/value pairs that were injected
  """
  values = parse_env(content, codec=codec)
  for key, value in values.items():
    if '\x00' in key or '\x00' in value:
      raise InvalidEnvironmentValueError(f"Value of {key!r} contains a NUL character and cannot be set in the environment")
  target: EnvironmentSink = os.environ if sink is None else sink
  for key, value in values.items():
    target[key] = value
  return values

def load_into_environment(
      path: str,
      mode: EncryptionMode=EncryptionMode.ENCRYPTED,
      sink: Optional[EnvironmentSink]=None,
      policy_path: Optional[str]=DEFAULT_POLICY_FILE,
      codec: Optional[ValueCodec]=None,
    ) -> Dict[str, str]:
  """Bring a configuration file into the desired at-rest state, then inject its values.

  With EncryptionMode.ENCRYPTED, the file is first encrypted per the policy (see
  encrypt_file()). With EncryptionMode.PLAINTEXT, a file holding any encrypted value is
  rewritten decrypted; a file that is already plaintext is not rewritten. In both cases the
  environment always receives plaintext values.

  Raises:
      SourceFileNotFoundError: path does not exist
      DotenvGuardError: a value could not be encrypted or decrypted

  Returns:
      Dict[str, str]: The plaintext key/value pairs that were injected
  """
  if mode is EncryptionMode.ENCRYPTED:
    content = encrypt_file(path, policy_path=policy_path, codec=codec).content
  else:
    content = read_env_file(path)
    if file_has_encrypted_value(content):
      content = decrypt_content(content, codec=codec)
      write_env_file(path, content)
      logger.info(f"{path}: rewritten as plaintext")
  return inject_into_environment(content, sink=sink, codec=codec)
