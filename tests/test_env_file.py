#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Tests for whole-file encryption, decryption, migration and environment injection"""

import json
import os

import pytest

from dotenv_guard import (
    EncryptionMode,
    EncryptionPolicy,
    encrypt_file,
    decrypt_file,
    migrate_file,
    parse_env,
    inject_into_environment,
    load_into_environment,
    file_has_encrypted_value,
    is_encrypted,
    DecryptionAuthError,
    LegacyDependencyMissingError,
    SourceFileNotFoundError,
    SourceFileDecodeError,
    InvalidEnvironmentValueError,
  )
from dotenv_guard.env_file import encrypt_content, decrypt_content
from dotenv_guard.lines import parse_line, split_lines, join_lines, iter_assignments

SAMPLE = "DATABASE_URL=postgresql://localhost\nAPI_KEY=secret123\nPORT=3000\n"


def _write(path, content: str) -> str:
  with open(str(path), 'w', encoding='utf-8', newline='') as f:
    f.write(content)
  return str(path)


def _read(path) -> str:
  with open(str(path), encoding='utf-8', newline='') as f:
    return f.read()


def _tamper(value: str) -> str:
  return value[:-1] + ('0' if value[-1] != '0' else '1')


class TestLines:

  @pytest.mark.parametrize('line,expected', [
      ('KEY=value', ('KEY', 'value')),
      ('  KEY = value  ', ('KEY', 'value')),
      ('KEY=a=b=c', ('KEY', 'a=b=c')),
      ('KEY=', ('KEY', '')),
      ('=value', ('', 'value')),
      ('', None),
      ('   ', None),
      ('# KEY=value', None),
      ('   # comment', None),
      ('no assignment here', None),
    ])
  def test_parse_line(self, line, expected):
    assert parse_line(line) == expected

  def test_split_and_join(self):
    assert split_lines("A=1\r\nB=2\n") == ['A=1', 'B=2', '']
    assert join_lines(split_lines("A=1\nB=2\n")) == "A=1\nB=2\n"


class TestEncryptFile:

  def test_selective_encryption(self, tmp_path, codec):
    env_file = _write(tmp_path / '.env', SAMPLE)
    policy_file = _write(tmp_path / 'env.enc.json', json.dumps(dict(encrypt=['DATABASE_URL', 'API_KEY'], plaintext=['PORT'])))
    result = encrypt_file(env_file, policy_path=policy_file, codec=codec)
    assert result.path == env_file
    assert result.encrypted == 2
    assert result.plaintext == 1
    lines = _read(env_file).split('\n')
    assert lines[2] == 'PORT=3000'
    assert lines[3] == ''
    for line, key in zip(lines[:2], ['DATABASE_URL', 'API_KEY']):
      k, v = parse_line(line)
      assert k == key
      assert is_encrypted(v)
      assert len(v.split(':')) == 4
    assert decrypt_file(env_file, codec=codec) == SAMPLE

  def test_no_policy_encrypts_all(self, tmp_path, codec):
    env_file = _write(tmp_path / '.env', SAMPLE)
    result = encrypt_file(env_file, policy_path=str(tmp_path / 'missing.json'), codec=codec)
    assert result.encrypted == 3
    assert result.plaintext == 0
    assert all(is_encrypted(v) for _, v in iter_assignments(_read(env_file)))

  def test_malformed_policy_encrypts_all(self, tmp_path, codec):
    env_file = _write(tmp_path / '.env', SAMPLE)
    policy_file = _write(tmp_path / 'env.enc.json', '{ broken')
    result = encrypt_file(env_file, policy_path=policy_file, codec=codec)
    assert result.encrypted == 3

  def test_explicit_policy(self, tmp_path, codec):
    env_file = _write(tmp_path / '.env', SAMPLE)
    result = encrypt_file(env_file, policy_path=None, codec=codec, policy=EncryptionPolicy(plaintext=['PORT', 'API_KEY']))
    assert result.encrypted == 1
    assert result.plaintext == 2

  def test_idempotent(self, tmp_path, codec):
    env_file = _write(tmp_path / '.env', SAMPLE)
    encrypt_file(env_file, policy_path=None, codec=codec)
    first = _read(env_file)
    result = encrypt_file(env_file, policy_path=None, codec=codec)
    assert _read(env_file) == first
    assert result.encrypted == 3

  def test_passthrough_lines(self, tmp_path, codec):
    content = "# header comment\n\n  # indented comment\nnot an assignment\n  KEY =  value  \n"
    env_file = _write(tmp_path / '.env', content)
    encrypt_file(env_file, policy_path=None, codec=codec)
    lines = _read(env_file).split('\n')
    assert lines[:4] == ['# header comment', '', '  # indented comment', 'not an assignment']
    assert lines[4].startswith('KEY=aes:')
    assert lines[5] == ''
    assert decrypt_file(env_file, codec=codec) == "# header comment\n\n  # indented comment\nnot an assignment\nKEY=value\n"

  def test_crlf_is_normalized(self, tmp_path, codec):
    env_file = _write(tmp_path / '.env', "A=1\r\nB=2\r\n")
    encrypt_file(env_file, policy_path=None, codec=codec)
    content = _read(env_file)
    assert '\r' not in content
    assert decrypt_file(env_file, codec=codec) == "A=1\nB=2\n"

  def test_no_trailing_newline(self, tmp_path, codec):
    env_file = _write(tmp_path / '.env', "A=1")
    encrypt_file(env_file, policy_path=None, codec=codec)
    assert not _read(env_file).endswith('\n')

  def test_output_path(self, tmp_path, codec):
    env_file = _write(tmp_path / '.env', SAMPLE)
    out_file = str(tmp_path / '.env.enc')
    result = encrypt_file(env_file, output_path=out_file, policy_path=None, codec=codec)
    assert result.path == out_file
    assert _read(env_file) == SAMPLE
    assert decrypt_file(out_file, codec=codec) == SAMPLE

  def test_undecodable_file(self, tmp_path, codec):
    env_file = tmp_path / '.env'
    env_file.write_bytes(b'A=1\nB=\xff\xfe\n')
    with pytest.raises(SourceFileDecodeError) as exc_info:
      encrypt_file(str(env_file), policy_path=None, codec=codec)
    assert exc_info.value.filename == str(env_file)
    assert env_file.read_bytes() == b'A=1\nB=\xff\xfe\n'

  def test_missing_file(self, tmp_path, codec):
    with pytest.raises(SourceFileNotFoundError) as exc_info:
      encrypt_file(str(tmp_path / '.env'), policy_path=None, codec=codec)
    assert exc_info.value.filename == str(tmp_path / '.env')

  def test_legacy_value_is_decrypted_not_reencrypted(self, tmp_path, legacy_aware_codec, legacy_encrypt):
    content = f"API_KEY={legacy_encrypt('secret123')}\nPORT={legacy_encrypt('3000')}\n"
    env_file = _write(tmp_path / '.env', content)
    encrypt_file(env_file, policy_path=None, codec=legacy_aware_codec, policy=EncryptionPolicy(plaintext=['PORT']))
    lines = _read(env_file).split('\n')
    assert lines[1] == 'PORT=3000'
    assert legacy_aware_codec.decrypt(parse_line(lines[0])[1]) == 'secret123'

  def test_legacy_without_support_aborts(self, tmp_path, codec, legacy_encrypt):
    content = f"A=plain\nAPI_KEY={legacy_encrypt('secret123')}\n"
    env_file = _write(tmp_path / '.env', content)
    with pytest.raises(LegacyDependencyMissingError):
      encrypt_file(env_file, policy_path=None, codec=codec)
    assert _read(env_file) == content


class TestDecryptFile:

  def test_file_is_not_modified(self, tmp_path, codec):
    env_file = _write(tmp_path / '.env', SAMPLE)
    encrypt_file(env_file, policy_path=None, codec=codec)
    encrypted = _read(env_file)
    assert decrypt_file(env_file, codec=codec) == SAMPLE
    assert _read(env_file) == encrypted

  def test_tampered_value(self, codec):
    content = encrypt_content(SAMPLE, codec=codec).content
    lines = content.split('\n')
    lines[1] = _tamper(lines[1])
    with pytest.raises(DecryptionAuthError):
      decrypt_content('\n'.join(lines), codec=codec)

  def test_mixed_legacy_and_current(self, legacy_aware_codec, legacy_encrypt):
    content = f"A={legacy_aware_codec.encrypt('one')}\nB={legacy_encrypt('two')}\nC=three"
    assert decrypt_content(content, codec=legacy_aware_codec) == "A=one\nB=two\nC=three"


class TestMigrateFile:

  def test_migrate(self, tmp_path, legacy_aware_codec, legacy_encrypt):
    current = legacy_aware_codec.encrypt('current')
    content = f"# comment\nOLD={legacy_encrypt('secret123')}\nNEW={current}\nPLAIN = 3000\n"
    env_file = _write(tmp_path / '.env', content)
    assert migrate_file(env_file, codec=legacy_aware_codec) == 1
    lines = _read(env_file).split('\n')
    assert lines[0] == '# comment'
    assert is_encrypted(parse_line(lines[1])[1])
    assert lines[2] == f"NEW={current}"
    assert lines[3] == 'PLAIN = 3000'
    assert decrypt_file(env_file, codec=legacy_aware_codec) == "# comment\nOLD=secret123\nNEW=current\nPLAIN=3000\n"

  def test_nothing_to_migrate(self, tmp_path, legacy_aware_codec):
    content = "A = 1\r\nB=2\r\n"
    env_file = _write(tmp_path / '.env', content)
    assert migrate_file(env_file, codec=legacy_aware_codec) == 0
    assert _read(env_file) == content

  def test_migrate_to_output_path(self, tmp_path, legacy_aware_codec, legacy_encrypt):
    content = f"OLD={legacy_encrypt('secret123')}\n"
    env_file = _write(tmp_path / '.env', content)
    out_file = str(tmp_path / '.env.migrated')
    assert migrate_file(env_file, output_path=out_file, codec=legacy_aware_codec) == 1
    assert _read(env_file) == content
    assert decrypt_file(out_file, codec=legacy_aware_codec) == "OLD=secret123\n"

  def test_migrate_without_support(self, tmp_path, codec, legacy_encrypt):
    env_file = _write(tmp_path / '.env', f"OLD={legacy_encrypt('secret123')}\n")
    with pytest.raises(LegacyDependencyMissingError):
      migrate_file(env_file, codec=codec)


class TestParseAndInject:

  def test_last_assignment_wins(self, codec):
    content = f"A=1\nA={codec.encrypt('2')}\n=orphan\nB = x=y \n"
    assert parse_env(content, codec=codec) == dict(A='2', B='x=y')

  def test_inject(self, codec):
    sink = dict(EXISTING='keep')
    values = inject_into_environment(f"A={codec.encrypt('secret')}\nB=plain\n", sink=sink, codec=codec)
    assert values == dict(A='secret', B='plain')
    assert sink == dict(EXISTING='keep', A='secret', B='plain')

  def test_inject_failure_leaves_sink_untouched(self, codec):
    sink = {}
    content = f"A=plain\nB={_tamper(codec.encrypt('secret'))}\n"
    with pytest.raises(DecryptionAuthError):
      inject_into_environment(content, sink=sink, codec=codec)
    assert sink == {}

  def test_inject_into_os_environ(self, codec, monkeypatch):
    monkeypatch.delenv('DOTENV_GUARD_TEST_VALUE', raising=False)
    inject_into_environment(f"DOTENV_GUARD_TEST_VALUE={codec.encrypt('from-file')}", codec=codec)
    assert os.environ['DOTENV_GUARD_TEST_VALUE'] == 'from-file'
    monkeypatch.delenv('DOTENV_GUARD_TEST_VALUE')

  def test_nul_value_leaves_environment_untouched(self, codec, monkeypatch):
    monkeypatch.delenv('DOTENV_GUARD_TEST_FIRST', raising=False)
    bad_value = codec.encrypt('bad\x00value')
    content = f"DOTENV_GUARD_TEST_FIRST=ok\nDOTENV_GUARD_TEST_SECOND={bad_value}\n"
    with pytest.raises(InvalidEnvironmentValueError):
      inject_into_environment(content, codec=codec)
    assert 'DOTENV_GUARD_TEST_FIRST' not in os.environ

  def test_file_has_encrypted_value(self, codec, legacy_encrypt):
    assert not file_has_encrypted_value("A=1\n# B=aes:x\nC=http://h:80\n")
    assert file_has_encrypted_value(f"A={codec.encrypt('x')}")
    assert file_has_encrypted_value(f"A={legacy_encrypt('x')}")


class TestLoadIntoEnvironment:

  def test_encrypted_mode(self, tmp_path, codec):
    env_file = _write(tmp_path / '.env', SAMPLE)
    sink = {}
    values = load_into_environment(env_file, mode=EncryptionMode.ENCRYPTED, sink=sink,
                                   policy_path=str(tmp_path / 'env.enc.json'), codec=codec)
    assert values == dict(DATABASE_URL='postgresql://localhost', API_KEY='secret123', PORT='3000')
    assert sink == values
    assert file_has_encrypted_value(_read(env_file))

  def test_plaintext_mode_decrypts_file(self, tmp_path, codec):
    env_file = _write(tmp_path / '.env', SAMPLE)
    encrypt_file(env_file, policy_path=None, codec=codec)
    sink = {}
    load_into_environment(env_file, mode=EncryptionMode.PLAINTEXT, sink=sink, codec=codec)
    assert _read(env_file) == SAMPLE
    assert sink['API_KEY'] == 'secret123'

  def test_plaintext_mode_leaves_plaintext_file_alone(self, tmp_path, codec):
    content = "A = 1\r\n"
    env_file = _write(tmp_path / '.env', content)
    sink = {}
    load_into_environment(env_file, mode=EncryptionMode.PLAINTEXT, sink=sink, codec=codec)
    assert _read(env_file) == content
    assert sink == dict(A='1')

  def test_from_enc_flag(self):
    assert EncryptionMode.from_enc_flag(True) is EncryptionMode.ENCRYPTED
    assert EncryptionMode.from_enc_flag(False) is EncryptionMode.PLAINTEXT

