# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""
Package dotenv_guard provides a command-line tool as well as a runtime API for loading .env configuration files
into the process environment while keeping secret values encrypted at rest with AES-256-GCM, with optional
per-key selective encryption and schema validation.
"""

from .version import __version__

from .constants import (
    KEY_SIZE_BITS,
    KEY_SIZE_BYTES,
    NONCE_SIZE_BYTES,
    TAG_SIZE_BYTES,
    MASTER_KEY_ENV_VAR,
    MASTER_KEY_FILE,
    DEFAULT_ENV_FILE,
    DEFAULT_POLICY_FILE,
    DEFAULT_SCHEMA_FILE,
  )

from .util import (
    generate_key,
    generate_nonce,
    encrypt_string,
    decrypt_string,
  )

from .key_store import KeyStore, generate_master_key, get_default_key_store
from .legacy import LegacyCodec, CbcLegacyCodec, MissingLegacyCodec, is_legacy_encrypted, resolve_legacy_codec
from .value_codec import (
    ValueCodec,
    ValueFormat,
    detect_format,
    is_encrypted,
    encrypt_value,
    decrypt_value,
    get_default_codec,
  )
from .policy import (
    EncryptionPolicy,
    should_encrypt,
    load_policy,
    generate_policy,
    save_policy,
  )
from .env_file import (
    EncryptionMode,
    EncryptResult,
    encrypt_file,
    decrypt_file,
    migrate_file,
    parse_env,
    inject_into_environment,
    load_into_environment,
    file_has_encrypted_value,
  )
from .schema import load_schema, validate_env, check_env, generate_schema, init_schema
from .loader import config
from .internal_types import Jsonable, EnvironmentSink
from .exceptions import (
    DotenvGuardError,
    SourceFileNotFoundError,
    SourceFileDecodeError,
    KeyStorageUnavailableError,
    InvalidMasterKeyError,
    InvalidEncryptedFormatError,
    DecryptionAuthError,
    LegacyFormatDetectedError,
    LegacyDependencyMissingError,
    InvalidEnvironmentValueError,
    PolicyParseError,
    SchemaParseError,
    SchemaValidationFailedError,
  )
