#!/usr/bin/env python3
#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Constants defined by this package"""

KEY_SIZE_BITS = 256
"""Size of the symmetric AES master key in bits"""

KEY_SIZE_BYTES = KEY_SIZE_BITS // 8
"""Size of the symmetric AES master key in bytes"""

KEY_SIZE_HEX = KEY_SIZE_BYTES * 2
"""Number of hex characters in an encoded master key"""

TAG_SIZE_BYTES = 16
"""Size of the GCM authentication tag carried with each encrypted value"""

NONCE_SIZE_BYTES = 12
"""Number of random bytes used for the nonce (IV) on each encrypted value"""

ENCRYPTED_VALUE_PREFIX = "aes"
"""Literal first segment of a current-format encrypted value"""

ENCRYPTED_VALUE_SEPARATOR = ":"
"""Separator between segments of encrypted values, current and legacy"""

LEGACY_IV_SIZE_BYTES = 16
"""Size of the CBC initialization vector in legacy encrypted values"""

LEGACY_KEYCHAIN_SERVICE = "dotenv-guard"
"""OS keychain service name under which the legacy key was stored"""

LEGACY_KEYCHAIN_ACCOUNT = "default"
"""OS keychain account name under which the legacy key was stored"""

MASTER_KEY_ENV_VAR = "DOTENV_GUARD_MASTER_KEY"
"""Environment variable that overrides any persisted master key"""

KEY_DIR_NAME = ".dotenv-guard"
"""Name of the directory, under each candidate location, that holds the key file"""

MASTER_KEY_FILE = "master.key"
"""Name of the persisted master key file"""

WRITE_PROBE_FILE = ".write-test"
"""Scratch file used to verify that a candidate key directory is writable"""

KEY_DIR_MODE = 0o700
"""Permissions of a created key directory (owner only)"""

KEY_FILE_MODE = 0o600
"""Permissions of a persisted key file (owner read/write only)"""

DEFAULT_ENV_FILE = ".env"
"""Configuration file used when none is named"""

DEFAULT_POLICY_FILE = "env.enc.json"
"""Selective encryption policy file used when none is named"""

DEFAULT_SCHEMA_FILE = "env.schema.json"
"""Validation schema file used when none is named"""
