#
# Copyright (c) 2022 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

"""Type hints used internally by this package"""

from typing import Dict, List, MutableMapping, Union

JsonableAtom = Union[str, int, float, bool, None]
Jsonable = Union[JsonableAtom, List['Jsonable'], Dict[str, 'Jsonable']]
JsonableDict = Dict[str, Jsonable]

EnvironmentSink = MutableMapping[str, str]
"""A mapping that loaded key/value pairs are written into. os.environ by default."""

EnvSchema = Dict[str, Dict[str, Jsonable]]
"""A validation schema: key name -> { "required": bool, "regex": str, "enum": [str, ...] }"""

