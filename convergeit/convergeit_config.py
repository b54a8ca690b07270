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

"""Layered configuration for ConvergeIt runs.

Layers, lowest first: the built-in defaults below, ~/.convergeit/config,
each --config file in the order given, then -s section option value
overrides.
"""

import configparser
import io
import logging
import os
from convergeit import convergeit_util
from convergeit.convergeit_global import convergeit_global_object
from convergeit.convergeit_resource import ConvergeItException


class LayerConfigParser(configparser.RawConfigParser):

	def __init__(self):
		configparser.RawConfigParser.__init__(self)
		self.layers = []

	def read(self, filenames, encoding=None):
		if not isinstance(filenames, list):
			filenames = [filenames]
		for filename in filenames:
			cp = configparser.RawConfigParser()
			cp.read(filename, encoding=encoding)
			self.layers.append((cp, filename, None))
		return configparser.RawConfigParser.read(self, filenames, encoding=encoding)

	def read_file(self, f, source=None):
		cp = configparser.RawConfigParser()
		f.seek(0)
		cp.read_file(f, source)
		self.layers.append((cp, source, f))
		f.seek(0)
		return configparser.RawConfigParser.read_file(self, f, source)

	def whereset(self, section, option):
		for cp, filename, _ in reversed(self.layers):
			if cp.has_option(section, option):
				return filename
		raise ConvergeItException('[%s]/%s was never set' % (section, option))

	def get_config_set(self, section, option):
		"""Every value the option was given, across all layers.
		"""
		values = set()
		for cp, _, _ in self.layers:
			if cp.has_option(section, option):
				values.add(cp.get(section, option))
		return values

	def reload(self):
		"""Reads every layer again, in the original order. Options removed from
		a file since it was first read keep their old value.
		"""
		oldlayers = self.layers
		self.layers = []
		for _, filename, f in oldlayers:
			if f is None:
				self.read(filename)
			else:
				self.read_file(f, filename)

	def remove_section(self, *args, **kwargs):
		raise NotImplementedError('''Layer config parsers aren't directly mutable''')

	def remove_option(self, *args, **kwargs):
		raise NotImplementedError('''Layer config parsers aren't directly mutable''')

	def set(self, *args, **kwargs):
		raise NotImplementedError('''Layer config parsers aren\'t directly mutable''')


default_cnf = '''
################################################################################
# Default core config file for ConvergeIt.
################################################################################

# Details relating to the target resources are converged on.
[target]
# simulated: an in-memory host (nothing is changed anywhere)
# shell:     the host a local bash session runs on
type:simulated
# Run state-changing commands with 'sudo -n' (shell targets only)
sudo:no
# Seconds to wait for any one command (shell targets only)
timeout:300
# os_family of a simulated target
os_family:Debian

# Facts laid over those discovered from the target, eg os_family:RedHat
[facts]

# How runs behave.
[run]
# Report what would change without changing anything
noop:no
# Exit non-zero if any resource failed
strict:yes

# Parameters passed to the catalog module, eg manage_config:yes
[module]
'''


def get_configs(configs=None, overrides=None, home_config=None):
	"""Reads the config layers into a LayerConfigParser.

	@param configs:     Extra config files, lowest priority first.
	@param overrides:   List of (section, option, value) triples.
	@param home_config: Per-user config file; ~/.convergeit/config by default.
	"""
	cp = LayerConfigParser()
	cp.read_file(io.StringIO(default_cnf), 'defaults')
	if home_config is None:
		home_config = os.path.join(os.path.expanduser('~'), '.convergeit', 'config')
	files = [home_config] + list(configs or [])
	for config_file in files:
		if not os.path.isfile(config_file):
			if config_file != home_config:
				raise ConvergeItException('Config file not found: ' + config_file)
			continue
		if not convergeit_util.is_file_secure(config_file):
			raise ConvergeItException('Config file ' + config_file + ' is readable by others. Run: chmod 0600 ' + config_file)
		convergeit_global_object.log('Reading config file: ' + config_file, level=logging.DEBUG)
		cp.read(config_file)
	if overrides:
		# A section may only appear once in one layer.
		sections = {}
		for section, option, value in overrides:
			sections.setdefault(section, []).append(option + ':' + value)
		override_cnf = ''
		for section, lines in sections.items():
			override_cnf += '[' + section + ']\n' + '\n'.join(lines) + '\n'
		cp.read_file(io.StringIO(override_cnf), 'overrides')
	return cp


def section_dict(cp, section):
	if not cp.has_section(section):
		return {}
	return dict(cp.items(section))


def print_config(cp, history=False):
	"""Returns a string representing the config of this ConvergeIt run.
	"""
	s = ''
	for section in cp.sections():
		s += '\n[' + section + ']\n'
		for option in cp.options(section):
			s += option + ':' + cp.get(section, option)
			if history:
				s += '    # set in: ' + str(cp.whereset(section, option))
			s += '\n'
	return s
