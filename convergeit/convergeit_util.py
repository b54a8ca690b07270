# The MIT License (MIT)
# 
# Copyright (C) 2014 OpenBet Limited
# 
# Permission is hereby granted, free of charge, to any person obtaining a copy of
# this software and associated documentation files (the "Software"), to deal in
# the Software without restriction, including without limitation the rights to
# use, copy, modify, merge, publish, distribute, sublicense, and/or sell copies
# of the Software, and to permit persons to whom the Software is furnished to do
# so, subject to the following conditions:
# 
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
# 
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# ITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL
# THE AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.

"""ConvergeIt utility functions.
"""

import base64
import importlib.util
import logging
import os
import random
import re
import stat
import string
from convergeit.convergeit_global import convergeit_global_object
from convergeit.convergeit_resource import ConvergeItException

GROUP_OR_OTHER_BITS = stat.S_IRWXG | stat.S_IRWXO


def is_file_secure(path):
	"""True unless path is a file that group or other can access. A missing
	file counts as secure.
	"""
	if not os.path.isfile(path):
		return True
	return not os.stat(path).st_mode & GROUP_OR_OTHER_BITS


def colorise(code, msg):
	"""Wraps msg in an ANSI colour code, eg 32 for green.
	"""
	if not code:
		return msg
	return '\033[' + str(code) + 'm' + msg + '\033[0m'


def random_id(size=8, chars=string.ascii_letters + string.digits):
	"""Random token, eg for making a prompt unique.

	@param size:  Length of the token.
	@param chars: Characters to pick from.
	@rtype:       string
	"""
	return ''.join([random.choice(chars) for _ in range(size)])


def match_string(output, regexp):
	"""Matches regexp against each line of output, first match wins.

	Returns the first group of the match, True when the regexp has no
	groups, or None when no line matches.
	"""
	if not isinstance(output, str):
		return None
	for line in re.split(r'\r\n|\r|\n', output):
		found = re.match(regexp, line)
		if found is None:
			continue
		if found.groups():
			return found.group(1)
		return True
	return None


def parse_facts(fact_args):
	"""Turns ['os_family=Debian', ...] into a dict.
	"""
	facts = {}
	for fact_arg in fact_args or []:
		if '=' not in fact_arg:
			raise ConvergeItException('Facts must be given as name=value, got: ' + fact_arg)
		name, value = fact_arg.split('=', 1)
		facts[name.strip()] = value.strip()
	return facts


def load_mod_from_file(fpath):
	"""Loads a catalog module from a .py file.

	We expect a callable 'module/0' which returns the module object.
	"""
	fpath = os.path.abspath(fpath)
	if os.path.splitext(fpath)[-1].lower() != '.py':
		raise ConvergeItException('Not a python file: ' + fpath)
	if not os.path.isfile(fpath):
		raise ConvergeItException('No such module file: ' + fpath)
	convergeit_global_object.log('Loading source for: ' + fpath, level=logging.DEBUG)
	mod_name = 'convergeit_module_' + base64.b32encode(fpath.encode()).decode().replace('=', '')
	spec = importlib.util.spec_from_file_location(mod_name, fpath)
	pymod = importlib.util.module_from_spec(spec)
	spec.loader.exec_module(pymod)
	modulefunc = getattr(pymod, 'module', None)
	if not callable(modulefunc):
		raise ConvergeItException(fpath + ' has no module() function, so is not a ConvergeIt module')
	return modulefunc()
