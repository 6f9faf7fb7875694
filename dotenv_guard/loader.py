#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""One-call loading of a .env file into the process environment, in the manner of dotenv's config()"""

from typing import Dict, Optional, TextIO

import logging
import os
import sys

from .constants import DEFAULT_ENV_FILE, DEFAULT_POLICY_FILE, DEFAULT_SCHEMA_FILE
from .env_file import EncryptionMode, load_into_environment
from .exceptions import DotenvGuardError, SchemaValidationFailedError
from .internal_types import EnvironmentSink
from .schema import load_schema, check_env
from .value_codec import ValueCodec

logger = logging.getLogger(__name__)

def report_failure(ex: Exception, stream: Optional[TextIO]=None) -> None:
  """Print a loading failure to stderr. Validation failures print every violation."""
  f = sys.stderr if stream is None else stream
  if isinstance(ex, SchemaValidationFailedError):
    for violation in ex.violations:
      print(f"dotenv-guard: {violation}", file=f)
    print("dotenv-guard: validation failed.", file=f)
  else:
    print(f"dotenv-guard: failed: {ex}", file=f)

def config(
      path: str=DEFAULT_ENV_FILE,
      enc: bool=True,
      validator: bool=False,
      schema: str=DEFAULT_SCHEMA_FILE,
      policy: Optional[str]=DEFAULT_POLICY_FILE,
      sink: Optional[EnvironmentSink]=None,
      codec: Optional[ValueCodec]=None,
      exit_on_error: bool=True,
    ) -> Dict[str, str]:
  """Load a .env file into the environment, optionally validating the result.

  Any failure is fatal: every problem is printed to stderr and the process exits with
  status 1, so that operators see all validation errors at once. Pass exit_on_error=False
  to get the exception raised instead.

  Args:
      path (str, optional):   The configuration file. Defaults to ".env".
      enc (bool, optional):   If True, the file is kept encrypted at rest (plaintext values
                              selected by the policy are encrypted in place). If False, the
                              file is kept as plaintext (encrypted values are decrypted in
                              place). Defaults to True.
      validator (bool, optional):
                              If True, validate the environment against the schema file after
                              loading. Defaults to False.
      schema (str, optional): The schema file used when validator is True.
                              Defaults to "env.schema.json".
      policy (Optional[str], optional):
                              The selective encryption policy file. Defaults to "env.enc.json".
      sink (Optional[EnvironmentSink], optional):
                              The mapping to load into and validate. If None, os.environ is used.
                              Defaults to None.
      codec (Optional[ValueCodec], optional):
                              The value codec. If None, the process-wide codec is used.
                              Defaults to None.
      exit_on_error (bool, optional):
                              If True, report failures and call sys.exit(1). If False, raise.
                              Defaults to True.

  Raises:
      DotenvGuardError: Loading or validation failed and exit_on_error is False

  Returns:
      Dict[str, str]: The plaintext key/value pairs that were loaded
  """
  target: EnvironmentSink = os.environ if sink is None else sink
  try:
    values = load_into_environment(
        path,
        mode=EncryptionMode.from_enc_flag(enc),
        sink=target,
        policy_path=policy,
        codec=codec,
      )
    if validator:
      env_schema = load_schema(schema)
      if env_schema is None:
        logger.warning(f"Validator enabled but schema file {schema} not found")
      else:
        check_env(target, env_schema)
  except DotenvGuardError as ex:
    if not exit_on_error:
      raise
    report_failure(ex)
    sys.exit(1)
  return values
