#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Validation of loaded environment values against a JSON schema file.

A schema (env.schema.json by default) maps each key to its rules:

    {
      "PORT":     { "required": true, "regex": "^[0-9]+$" },
      "NODE_ENV": { "enum": [ "development", "production", "test" ] },
      "SENTRY_DSN": { "required": false }
    }

Keys are required unless "required" is explicitly false. Regexes use re.search() semantics,
so anchor them with ^ and $ to match the whole value.
"""

from typing import List, Mapping, Optional

import json
import logging
import os
import re

from .constants import DEFAULT_ENV_FILE, DEFAULT_SCHEMA_FILE
from .exceptions import SchemaParseError, SchemaValidationFailedError
from .internal_types import EnvSchema
from .lines import read_env_file, iter_assignments

logger = logging.getLogger(__name__)

def load_schema(path: str=DEFAULT_SCHEMA_FILE) -> Optional[EnvSchema]:
  """Load a validation schema.

  Raises:
      SchemaParseError: The file is not a JSON object of objects

  Returns:
      Optional[EnvSchema]: The schema, or None if the file does not exist
  """
  if not os.path.exists(path):
    return None
  with open(path, encoding='utf-8') as f:
    text = f.read()
  try:
    schema = json.loads(text)
  except json.JSONDecodeError as e:
    raise SchemaParseError(f"{path}: invalid JSON: {e}") from e
  if not isinstance(schema, dict):
    raise SchemaParseError(f"{path}: schema must be a JSON object")
  for key, rules in schema.items():
    if not isinstance(rules, dict):
      raise SchemaParseError(f"{path}: rules for {key} must be a JSON object")
  return schema

def validate_env(env: Mapping[str, str], schema: EnvSchema) -> List[str]:
  """Check an environment against a schema and return every violation found.

  Args:
      env (Mapping[str, str]): The environment (e.g., os.environ) to check
      schema (EnvSchema):      The validation schema

  Returns:
      List[str]: Human-readable violations, in schema order. Empty if env is valid.
  """
  errors: List[str] = []
  for key, rules in schema.items():
    value = env.get(key)
    if not value:
      if rules.get('required') is not False:
        errors.append(f"Missing required env: {key}")
      continue
    regex = rules.get('regex')
    if regex:
      try:
        matched = re.search(str(regex), value) is not None
      except re.error as e:
        raise SchemaParseError(f"Invalid regex for {key}: {regex}: {e}") from e
      if not matched:
        errors.append(f'Env {key}="{value}" does not match {regex}')
    choices = rules.get('enum')
    if isinstance(choices, list) and value not in choices:
      errors.append(f'Env {key}="{value}" must be one of: {", ".join(str(x) for x in choices)}')
  return errors

def check_env(env: Mapping[str, str], schema: EnvSchema) -> None:
  """Validate an environment against a schema.

  Raises:
      SchemaValidationFailedError: Carries every violation, not just the first
  """
  errors = validate_env(env, schema)
  if len(errors) > 0:
    raise SchemaValidationFailedError(errors)

def generate_schema(env_file: str=DEFAULT_ENV_FILE) -> EnvSchema:
  """Build a starter schema that requires every key in a configuration file.

  Raises:
      SourceFileNotFoundError: env_file does not exist
  """
  content = read_env_file(env_file)
  schema: EnvSchema = {}
  for key, _ in iter_assignments(content):
    if key != '':
      schema[key] = dict(regex='.*', required=True)
  return schema

def init_schema(env_file: str=DEFAULT_ENV_FILE, schema_path: str=DEFAULT_SCHEMA_FILE) -> Optional[str]:
  """Create a schema file from a configuration file, unless one already exists.

  Raises:
      SourceFileNotFoundError: env_file does not exist

  Returns:
      Optional[str]: schema_path if it was created, or None if it already existed
  """
  schema = generate_schema(env_file)
  if os.path.exists(schema_path):
    logger.warning(f"{schema_path} already exists, skipped")
    return None
  with open(schema_path, 'w', encoding='utf-8') as f:
    f.write(json.dumps(schema, indent=2) + '\n')
  return schema_path
