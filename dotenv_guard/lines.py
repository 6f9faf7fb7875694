#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Line-oriented parsing of .env-style configuration files"""

from typing import Iterator, List, Optional, Tuple

import os
import re

from .exceptions import SourceFileNotFoundError, SourceFileDecodeError

_LINE_SPLIT_RE = re.compile(r'\r?\n')

def read_env_file(path: str) -> str:
  """Read a whole configuration file as text.

  Raises:
      SourceFileNotFoundError: path does not exist
      SourceFileDecodeError: path is not valid UTF-8
  """
  if not os.path.isfile(path):
    raise SourceFileNotFoundError(path)
  try:
    with open(path, encoding='utf-8', newline='') as f:
      return f.read()
  except UnicodeDecodeError as e:
    raise SourceFileDecodeError(path) from e

def write_env_file(path: str, content: str) -> None:
  """Write a whole configuration file. Newlines are written as-is."""
  with open(path, 'w', encoding='utf-8', newline='') as f:
    f.write(content)

def split_lines(content: str) -> List[str]:
  """Split file content on \\n or \\r\\n. join_lines(split_lines(x)) preserves a trailing newline."""
  return _LINE_SPLIT_RE.split(content)

def join_lines(lines: List[str]) -> str:
  return '\n'.join(lines)

def is_passthrough(line: str) -> bool:
  """True for blank lines and whole-line comments, which are never transformed."""
  stripped = line.strip()
  return stripped == '' or stripped.startswith('#')

def parse_line(line: str) -> Optional[Tuple[str, str]]:
  """Parse one line of a configuration file.

  The first "=" separates key from value; both are trimmed of surrounding whitespace.

  Returns:
      Optional[Tuple[str, str]]: (key, value) for an assignment line, or None for a blank,
                                 comment, or malformed (no "=") line.
  """
  if is_passthrough(line):
    return None
  idx = line.find('=')
  if idx < 0:
    return None
  return line[:idx].strip(), line[idx+1:].strip()

def format_assignment(key: str, value: str) -> str:
  return f"{key}={value}"

def iter_assignments(content: str) -> Iterator[Tuple[str, str]]:
  """Yields (key, value) for each assignment line in content, in file order."""
  for line in split_lines(content):
    kv = parse_line(line)
    if kv is not None:
      yield kv
