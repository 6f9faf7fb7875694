#!/usr/bin/env python3
#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Command-line interface for dotenv_guard package"""


from typing import Optional, Sequence, TextIO, cast

import os
import sys
import argparse
import json
import logging
import colorama # type: ignore[import]
from colorama import Fore, Style
from pygments import highlight, lexers, formatters

# NOTE: this module runs with -m; do not use relative imports
from dotenv_guard import (
    Jsonable,
    DotenvGuardError,
    SchemaValidationFailedError,
    KeyStore,
    ValueCodec,
    encrypt_file,
    decrypt_file,
    migrate_file,
    parse_env,
    check_env,
    load_schema,
    init_schema,
    generate_policy,
    save_policy,
    DEFAULT_ENV_FILE,
    DEFAULT_POLICY_FILE,
    DEFAULT_SCHEMA_FILE,
    __version__ as pkg_version,
  )
from dotenv_guard.lines import read_env_file, write_env_file

def is_colorizable(stream: TextIO) -> bool:
  is_a_tty = hasattr(stream, 'isatty') and stream.isatty()
  return is_a_tty

class CmdExitError(RuntimeError):
  exit_code: int

  def __init__(self, exit_code: int, msg: Optional[str]=None):
    if msg is None:
      msg = f"Command exited with return code {exit_code}"
    super().__init__(msg)
    self.exit_code = exit_code

class ArgparseExitError(CmdExitError):
  pass

class NoExitArgumentParser(argparse.ArgumentParser):
  def exit(self, status=0, message=None):
    if message:
      self._print_message(message, sys.stderr)
    raise ArgparseExitError(status, message)

class CommandHandler:
  _argv: Optional[Sequence[str]]
  _parser: argparse.ArgumentParser
  _args: argparse.Namespace
  _colorize_stdout: bool = False
  _colorize_stderr: bool = False
  _compact: bool = False
  _raw: bool = False
  _encoding: str
  _output_file: Optional[str] = None
  _key_store: Optional[KeyStore] = None
  _codec: Optional[ValueCodec] = None

  def __init__(self, argv: Optional[Sequence[str]]=None):
    self._argv = argv

  def ecolor(self, codes: str) -> str:
    return codes if self._colorize_stderr else ""

  def pretty_print(
        self,
        any_value: Jsonable,
        compact: Optional[bool]=None,
        colorize: Optional[bool]=None,
        raw: Optional[bool]=None,
      ):
    if raw is None:
      raw = self._raw
    if raw and isinstance(any_value, str):
      self.write_text(any_value)
      return
    value = cast(Jsonable, any_value)

    if compact is None:
      compact = self._compact
    if colorize is None:
      colorize = True

    def emit_to(f: TextIO):
      final_colorize = colorize and ((f is sys.stdout and self._colorize_stdout) or (f is sys.stderr and self._colorize_stderr))

      if compact:
        json_text = json.dumps(value, separators=(',', ':'), sort_keys=True)
      else:
        json_text = json.dumps(value, indent=2, sort_keys=True)
      if final_colorize:
        json_text = highlight(json_text, lexers.JsonLexer(), formatters.TerminalFormatter())  # pylint: disable=no-member
      else:
        json_text += '\n'
      f.write(json_text)

    output_file = self._output_file
    if output_file is None:
      emit_to(sys.stdout)
    else:
      with open(output_file, "w", encoding=self._encoding) as f:
        emit_to(f)

  def write_text(self, text: str):
    output_file = self._output_file
    if output_file is None:
      sys.stdout.write(text)
    else:
      with open(output_file, "w", encoding=self._encoding) as f:
        f.write(text)

  def get_key_store(self) -> KeyStore:
    if self._key_store is None:
      self._key_store = KeyStore()
    return self._key_store

  def get_codec(self) -> ValueCodec:
    if self._codec is None:
      self._codec = ValueCodec(key_store=self.get_key_store())
    return self._codec

  def get_env_file(self) -> str:
    env_file: Optional[str] = self._args.env_file
    return DEFAULT_ENV_FILE if env_file is None else env_file

  def cmd_bare(self) -> int:
    print("A command is required", file=sys.stderr)
    return 1

  def cmd_encrypt(self) -> int:
    args = self._args
    policy_file: Optional[str] = None if args.no_policy else args.policy_file
    result = encrypt_file(
        self.get_env_file(),
        output_path=args.dest,
        policy_path=policy_file,
        codec=self.get_codec(),
      )
    self.pretty_print(dict(file=result.path, encrypted=result.encrypted, plaintext=result.plaintext))
    return 0

  def cmd_decrypt(self) -> int:
    args = self._args
    env_file = self.get_env_file()
    plaintext = decrypt_file(env_file, codec=self.get_codec())
    if args.write:
      write_env_file(env_file, plaintext)
      self.pretty_print(dict(file=env_file, decrypted=True))
    else:
      self.write_text(plaintext)
    return 0

  def cmd_migrate(self) -> int:
    args = self._args
    env_file = self.get_env_file()
    n_migrated = migrate_file(env_file, output_path=args.dest, codec=self.get_codec())
    self.pretty_print(dict(file=env_file if args.dest is None else args.dest, migrated=n_migrated))
    return 0

  def cmd_validate(self) -> int:
    args = self._args
    schema_file: str = args.schema_file
    schema = load_schema(schema_file)
    if schema is None:
      raise DotenvGuardError(f"{schema_file} not found")
    env_file = self.get_env_file()
    values = parse_env(read_env_file(env_file), codec=self.get_codec())
    try:
      check_env(values, schema)
    except SchemaValidationFailedError as ex:
      for violation in ex.violations:
        print(f"{self.ecolor(Fore.RED)}{violation}{self.ecolor(Style.RESET_ALL)}", file=sys.stderr)
      print(f"{self.ecolor(Fore.RED)}dotenv-guard: validation failed.{self.ecolor(Style.RESET_ALL)}", file=sys.stderr)
      return 1
    self.pretty_print(dict(file=env_file, schema=schema_file, valid=True))
    return 0

  def cmd_init_bare(self) -> int:
    print("An init target is required: schema or policy", file=sys.stderr)
    return 1

  def cmd_init_schema(self) -> int:
    args = self._args
    env_file = self.get_env_file()
    schema_file: str = args.schema_file
    created = init_schema(env_file, schema_file)
    if created is None:
      print(f"{self.ecolor(Fore.YELLOW)}{schema_file} already exists, skipped{self.ecolor(Style.RESET_ALL)}", file=sys.stderr)
    else:
      print(f"{self.ecolor(Fore.GREEN)}{schema_file} has been created from {env_file}{self.ecolor(Style.RESET_ALL)}", file=sys.stderr)
    return 0

  def cmd_init_policy(self) -> int:
    args = self._args
    env_file = self.get_env_file()
    policy_file: str = args.policy_file
    policy = generate_policy(env_file)
    if args.dry_run:
      self.pretty_print(policy.to_jsonable())
      return 0
    if os.path.exists(policy_file) and not args.force:
      print(f"{self.ecolor(Fore.YELLOW)}{policy_file} already exists, skipped (use --force to overwrite){self.ecolor(Style.RESET_ALL)}", file=sys.stderr)
      return 0
    save_policy(policy, policy_file)
    print(
        f"{self.ecolor(Fore.GREEN)}{policy_file} has been created from {env_file}: "
        f"{len(policy.encrypt)} encrypted, {len(policy.plaintext)} plaintext{self.ecolor(Style.RESET_ALL)}",
        file=sys.stderr
      )
    return 0

  def cmd_key(self) -> int:
    args = self._args
    key_store = self.get_key_store()
    env_var_set = key_store.get_override() is not None
    key_path: Optional[str]
    source: Optional[str]
    if args.create or env_var_set:
      key_store.resolve_key()
      key_path = key_store.key_path
      source = key_store.source
    else:
      # status only; never generates a key
      key_path = key_store.find_key_file()
      source = None if key_path is None else 'file'
    result: Jsonable = dict(
        exists=key_store.exists(),
        env_var=key_store.env_var,
        env_var_set=env_var_set,
        path=key_path,
        source=source,
      )
    self.pretty_print(result)
    return 0

  def cmd_version(self) -> int:
    self.pretty_print(pkg_version)
    return 0

  def run(self) -> int:
    """Run the dotenv-guard command-line tool with provided arguments

    Args:
        argv (Optional[Sequence[str]], optional):
            A list of commandline arguments (NOT including the program as argv[0]!),
            or None to use sys.argv[1:]. Defaults to None.

    Returns:
        int: The exit code that would be returned if this were run as a standalone command.
    """
    parser = NoExitArgumentParser(
        prog='dotenv-guard',
        description="Encrypt, decrypt and validate .env files with an automatically managed master key."
      )


    # ======================= Main command

    self._parser = parser
    parser.add_argument('--traceback', "--tb", action='store_true', default=False,
                        help='Display detailed exception information')
    parser.add_argument('-M', '--monochrome', action='store_true', default=False,
                        help='Output to stdout/stderr in monochrome. Default is to colorize if stream is a compatible terminal')
    parser.add_argument('-c', '--compact', action='store_true', default=False,
                        help='Compact instead of pretty-printed output')
    parser.add_argument('-r', '--raw', action='store_true', default=False,
                        help='''Output raw strings directly, not json-encoded.
                                Values embedded in structured results are not affected.''')
    parser.add_argument('-o', '--output', dest="output_file", default=None,
                        help='Write output value to the specified file instead of stdout')
    parser.add_argument('--text-encoding', default='utf-8',
                        help='The encoding used for text. Default  is utf-8')
    parser.add_argument('--log-level', default='warning',
                        choices=['debug', 'info', 'warning', 'error', 'critical'],
                        help='Logging level for diagnostic messages on stderr. Default is warning')
    parser.set_defaults(func=self.cmd_bare)

    subparsers = parser.add_subparsers(
                        title='Commands',
                        description='Valid commands',
                        help='Additional help available with "<command-name> -h"')


    # ======================= version

    parser_version = subparsers.add_parser('version',
                            description='''Display version information. JSON-quoted string. If a raw string is desired, use -r.''')
    parser_version.set_defaults(func=self.cmd_version)

    # ======================= encrypt

    parser_encrypt = subparsers.add_parser('encrypt',
                            description="Encrypt the values of a .env file in place, as selected by the encryption policy")
    parser_encrypt.add_argument('-p', '--policy', dest='policy_file', default=DEFAULT_POLICY_FILE,
                        help=f'''The selective encryption policy file. If it does not exist, all values are
                                encrypted. Default is {DEFAULT_POLICY_FILE}''')
    parser_encrypt.add_argument('--no-policy', action='store_true', default=False,
                        help='Ignore any policy file and encrypt all values')
    parser_encrypt.add_argument('-d', '--dest', default=None,
                        help='Write the encrypted file to the given path instead of overwriting the input file')
    parser_encrypt.add_argument('env_file', nargs='?', default=None,
                        help=f'The .env file to encrypt. Default is {DEFAULT_ENV_FILE}')
    parser_encrypt.set_defaults(func=self.cmd_encrypt)

    # ======================= decrypt

    parser_decrypt = subparsers.add_parser('decrypt',
                            description="Decrypt the values of a .env file and output the plaintext content")
    parser_decrypt.add_argument('-w', '--write', action='store_true', default=False,
                        help='Rewrite the file as plaintext instead of outputting its content')
    parser_decrypt.add_argument('env_file', nargs='?', default=None,
                        help=f'The .env file to decrypt. Default is {DEFAULT_ENV_FILE}')
    parser_decrypt.set_defaults(func=self.cmd_decrypt)

    # ======================= migrate

    parser_migrate = subparsers.add_parser('migrate',
                            description='''Re-encrypt legacy keychain-format values in a .env file into the current
                                           format. Requires the keyring package and the legacy key in the OS keychain.''')
    parser_migrate.add_argument('-d', '--dest', default=None,
                        help='Write the migrated file to the given path instead of overwriting the input file')
    parser_migrate.add_argument('env_file', nargs='?', default=None,
                        help=f'The .env file to migrate. Default is {DEFAULT_ENV_FILE}')
    parser_migrate.set_defaults(func=self.cmd_migrate)

    # ======================= validate

    parser_validate = subparsers.add_parser('validate',
                            description="Validate the (decrypted) values of a .env file against a schema, reporting every violation")
    parser_validate.add_argument('-s', '--schema', dest='schema_file', default=DEFAULT_SCHEMA_FILE,
                        help=f'The validation schema file. Default is {DEFAULT_SCHEMA_FILE}')
    parser_validate.add_argument('env_file', nargs='?', default=None,
                        help=f'The .env file to validate. Default is {DEFAULT_ENV_FILE}')
    parser_validate.set_defaults(func=self.cmd_validate)

    # ======================= init

    parser_init = subparsers.add_parser('init', description="Create a schema or policy file from a .env file")
    parser_init.set_defaults(func=self.cmd_init_bare)
    init_subparsers = parser_init.add_subparsers(
                        title='Targets',
                        description='Valid targets',
                        help='Additional help available with "init <target> -h"')

    parser_init_schema = init_subparsers.add_parser('schema',
                            description=f"Create {DEFAULT_SCHEMA_FILE} requiring every key of a .env file. Skipped if it exists.")
    parser_init_schema.add_argument('-s', '--schema', dest='schema_file', default=DEFAULT_SCHEMA_FILE,
                        help=f'The schema file to create. Default is {DEFAULT_SCHEMA_FILE}')
    parser_init_schema.add_argument('env_file', nargs='?', default=None,
                        help=f'The .env file to read keys from. Default is {DEFAULT_ENV_FILE}')
    parser_init_schema.set_defaults(func=self.cmd_init_schema)

    parser_init_policy = init_subparsers.add_parser('policy',
                            description=f"Create {DEFAULT_POLICY_FILE} by classifying every key of a .env file by name")
    parser_init_policy.add_argument('-p', '--policy', dest='policy_file', default=DEFAULT_POLICY_FILE,
                        help=f'The policy file to create. Default is {DEFAULT_POLICY_FILE}')
    parser_init_policy.add_argument('-f', '--force', action='store_true', default=False,
                        help='Overwrite an existing policy file')
    parser_init_policy.add_argument('-n', '--dry-run', action='store_true', default=False,
                        help='Output the generated policy instead of writing it')
    parser_init_policy.add_argument('env_file', nargs='?', default=None,
                        help=f'The .env file to read keys from. Default is {DEFAULT_ENV_FILE}')
    parser_init_policy.set_defaults(func=self.cmd_init_policy)

    # ======================= key

    parser_key = subparsers.add_parser('key',
                            description="Show where the master key comes from. The key itself is never displayed.")
    parser_key.add_argument('--create', action='store_true', default=False,
                        help='Generate and persist a master key if none exists yet')
    parser_key.set_defaults(func=self.cmd_key)

    # =========================================================

    try:
      args = parser.parse_args(self._argv)
    except ArgparseExitError as ex:
      return ex.exit_code
    traceback: bool = args.traceback
    try:
      self._args = args
      self._raw = args.raw
      self._compact = args.compact
      self._output_file = args.output_file
      self._encoding = args.text_encoding
      logging.basicConfig(
          level=getattr(logging, args.log_level.upper()),
          format='dotenv-guard: %(levelname)s: %(message)s',
          stream=sys.stderr,
        )
      monochrome: bool = args.monochrome
      if not monochrome:
        self._colorize_stdout = is_colorizable(sys.stdout)
        self._colorize_stderr = is_colorizable(sys.stderr)
        if self._colorize_stdout or self._colorize_stderr:
          colorama.init(wrap=False)
          if self._colorize_stdout:
            new_stream = colorama.AnsiToWin32(sys.stdout)
            if new_stream.should_wrap():
              sys.stdout = new_stream
          if self._colorize_stderr:
            new_stream = colorama.AnsiToWin32(sys.stderr)
            if new_stream.should_wrap():
              sys.stderr = new_stream
      rc = args.func()
    except Exception as ex:
      if isinstance(ex, CmdExitError):
        rc = ex.exit_code
      else:
        rc = 1
      if rc != 0:
        if traceback:
          raise

        print(f"{self.ecolor(Fore.RED)}dotenv-guard: error: {ex}{self.ecolor(Style.RESET_ALL)}", file=sys.stderr)
    return rc

def run(argv: Optional[Sequence[str]]=None) -> int:
  try:
    rc = CommandHandler(argv).run()
  except CmdExitError as ex:
    rc = ex.exit_code
  return rc

# allow running with "python3 -m", or as a standalone script
if __name__ == "__main__":
  sys.exit(run())
