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

"""Targets: the systems resources are converged on.

SimulatedTarget keeps the whole host in memory, for tests and dry runs.
ShellTarget drives a real host through a pexpect bash session.
"""

from abc import ABCMeta, abstractmethod
import base64
import logging
import re
import shlex
from convergeit import package_map
from convergeit.convergeit_catalog import FactSet
from convergeit.convergeit_global import convergeit_global_object
from convergeit.convergeit_pexpect import ConvergeItPexpectSession
from convergeit.convergeit_resource import ConvergeItException


class TargetError(ConvergeItException):
	"""An operation on the target failed.
	"""
	pass


class Target(metaclass=ABCMeta):
	"""What a resource may ask of the system it manages.
	"""

	@abstractmethod
	def get_facts(self):
		pass

	@abstractmethod
	def package_installed(self, name):
		pass

	@abstractmethod
	def install_package(self, name):
		pass

	@abstractmethod
	def remove_package(self, name):
		pass

	@abstractmethod
	def service_status(self, name):
		"""Returns {'enabled': bool, 'running': bool}.
		"""
		pass

	@abstractmethod
	def start_service(self, name):
		pass

	@abstractmethod
	def stop_service(self, name):
		pass

	@abstractmethod
	def restart_service(self, name):
		pass

	@abstractmethod
	def enable_service(self, name):
		pass

	@abstractmethod
	def disable_service(self, name):
		pass

	@abstractmethod
	def read_file(self, path):
		"""Returns the file's content, or None if it does not exist.
		"""
		pass

	@abstractmethod
	def file_mode(self, path):
		"""Returns the mode as a four digit octal string, eg '0644'.
		"""
		pass

	@abstractmethod
	def write_file(self, path, content, mode=None):
		"""Writes content (None keeps what is there) and sets mode if given.
		"""
		pass

	@abstractmethod
	def remove_file(self, path):
		pass

	@abstractmethod
	def is_port_listening(self, port):
		pass

	def close(self):
		pass


class SimulatedTarget(Target):
	"""An in-memory host.

	@param os_family:        Reported os_family fact.
	@param packages:         Packages installed to begin with.
	@param services:         Dict of service name to {'enabled', 'running'}.
	@param service_ports:    Dict of service name to the ports it listens on
	                         while running.
	@param service_packages: Dict of service name to the package providing
	                         it. Such a service cannot start, and does not
	                         exist, until the package is installed.
	@param failures:         Dict of operation name (eg 'install_package') to
	                         the names it fails for, or True for all.
	"""

	def __init__(self,
	             os_family=package_map.DEBIAN,
	             packages=None,
	             services=None,
	             service_ports=None,
	             service_packages=None,
	             failures=None,
	             facts=None):
		self.facts            = FactSet(facts or {}).merged({'os_family': os_family})
		self.packages         = set(packages or [])
		self.services         = dict((name, dict(status)) for name, status in (services or {}).items())
		self.service_ports    = dict(service_ports or {})
		self.service_packages = dict(service_packages or {})
		self.failures         = dict(failures or {})
		self.files            = {}
		# (operation, name) for every call, in order.
		self.operations       = []

	def _record(self, operation, name):
		self.operations.append((operation, name))
		failing = self.failures.get(operation)
		if failing is True or (failing and name in failing):
			raise TargetError(operation + ' ' + name + ' failed')

	def _service(self, name, must_exist=False):
		provider = self.service_packages.get(name)
		if provider is not None and provider not in self.packages:
			if must_exist:
				raise TargetError('Unit ' + name + '.service not found')
			return None
		return self.services.setdefault(name, {'enabled': False, 'running': False})

	def count(self, operation, name=None):
		return len([op for op in self.operations if op[0] == operation and (name is None or op[1] == name)])

	def get_facts(self):
		return self.facts

	def package_installed(self, name):
		self._record('package_installed', name)
		return name in self.packages

	def install_package(self, name):
		self._record('install_package', name)
		self.packages.add(name)

	def remove_package(self, name):
		self._record('remove_package', name)
		self.packages.discard(name)
		for service, provider in self.service_packages.items():
			if provider == name:
				self.services.pop(service, None)

	def service_status(self, name):
		self._record('service_status', name)
		status = self._service(name)
		if status is None:
			return {'enabled': False, 'running': False}
		return dict(status)

	def start_service(self, name):
		self._record('start_service', name)
		self._service(name, must_exist=True)['running'] = True

	def stop_service(self, name):
		self._record('stop_service', name)
		self._service(name, must_exist=True)['running'] = False

	def restart_service(self, name):
		self._record('restart_service', name)
		self._service(name, must_exist=True)['running'] = True

	def enable_service(self, name):
		self._record('enable_service', name)
		self._service(name, must_exist=True)['enabled'] = True

	def disable_service(self, name):
		self._record('disable_service', name)
		self._service(name, must_exist=True)['enabled'] = False

	def read_file(self, path):
		self._record('read_file', path)
		if path not in self.files:
			return None
		return self.files[path]['content']

	def file_mode(self, path):
		self._record('file_mode', path)
		return self.files[path]['mode']

	def write_file(self, path, content, mode=None):
		self._record('write_file', path)
		existing = self.files.get(path, {'content': '', 'mode': '0644'})
		self.files[path] = {'content': existing['content'] if content is None else content,
		                    'mode': mode or existing['mode']}

	def remove_file(self, path):
		self._record('remove_file', path)
		self.files.pop(path, None)

	def is_port_listening(self, port):
		for name, ports in self.service_ports.items():
			status = self._service(name)
			if status is not None and status['running'] and int(port) in [int(p) for p in ports]:
				return True
		return False


class ShellTarget(Target):
	"""The host a bash session runs on (the local machine, or whatever the
	session's command logs in to).

	@param session: ConvergeItPexpectSession to use; one is spawned if None.
	@param sudo:    Prefix commands that change state with 'sudo -n'.
	"""

	def __init__(self, session=None, sudo=False, timeout=300):
		self.session      = session or ConvergeItPexpectSession('target_child', timeout=timeout)
		self.sudo         = sudo
		self._facts       = None

	def run(self, command):
		"""Returns (exit status, output) for a command.
		"""
		if self.sudo:
			command = 'sudo -n ' + command
		return self.session.send_and_return_status(' ' + command)

	def check(self, command):
		status, output = self.run(command)
		if status != 0:
			raise TargetError('Command: ' + command + ' returned ' + str(status) + ':\n' + output)
		return output

	def get_facts(self):
		if self._facts is None:
			# /etc/os-release is world readable, so no sudo.
			status, os_release = self.session.send_and_return_status(' cat /etc/os-release')
			if status != 0:
				raise TargetError('Cannot read /etc/os-release to determine facts')
			values = {}
			for line in os_release.splitlines():
				match = re.match(r'^([A-Z_]+)=(.*)$', line.strip())
				if match:
					values[match.group(1)] = match.group(2).strip('"')
			os_family = package_map.os_family_for(values.get('ID', ''), values.get('ID_LIKE', ''))
			self._facts = FactSet({'os_family':              os_family,
			                       'operatingsystem':        values.get('ID', ''),
			                       'operatingsystemrelease': values.get('VERSION_ID', '')})
			convergeit_global_object.log('Facts: ' + repr(self._facts), level=logging.DEBUG)
		return self._facts

	@property
	def install_type(self):
		return package_map.install_type_for(self.get_facts()['os_family'])

	def package_installed(self, name):
		if self.install_type == 'apt':
			command = 'dpkg-query -W -f=\'${Status}\' ' + shlex.quote(name) + ' 2>/dev/null | grep -q "install ok installed"'
		elif self.install_type in ('yum', 'zypper'):
			command = 'rpm -q --quiet ' + shlex.quote(name)
		elif self.install_type == 'pacman':
			command = 'pacman -Q ' + shlex.quote(name) + ' >/dev/null 2>&1'
		else:
			raise TargetError('Cannot query packages with install type: ' + self.install_type)
		status, _ = self.run(command)
		return status == 0

	def _package_command(self, action, name):
		install_type = self.install_type
		name = shlex.quote(name)
		if install_type == 'apt':
			return 'env DEBIAN_FRONTEND=noninteractive apt-get ' + action + ' -y -qq ' + name
		elif install_type == 'yum':
			return 'yum ' + action + ' -y -q ' + name
		elif install_type == 'zypper':
			return 'zypper --non-interactive ' + action + ' ' + name
		elif install_type == 'pacman':
			return 'pacman --noconfirm ' + {'install': '-S', 'remove': '-R'}[action] + ' ' + name
		raise TargetError('Cannot manage packages with install type: ' + install_type)

	def install_package(self, name):
		self.check(self._package_command('install', name))

	def remove_package(self, name):
		self.check(self._package_command('remove', name))

	def service_status(self, name):
		enabled, _ = self.run('systemctl is-enabled --quiet ' + shlex.quote(name))
		running, _ = self.run('systemctl is-active --quiet ' + shlex.quote(name))
		return {'enabled': enabled == 0, 'running': running == 0}

	def start_service(self, name):
		self.check('systemctl start ' + shlex.quote(name))

	def stop_service(self, name):
		self.check('systemctl stop ' + shlex.quote(name))

	def restart_service(self, name):
		self.check('systemctl restart ' + shlex.quote(name))

	def enable_service(self, name):
		self.check('systemctl enable --quiet ' + shlex.quote(name))

	def disable_service(self, name):
		self.check('systemctl disable --quiet ' + shlex.quote(name))

	def read_file(self, path):
		status, _ = self.run('test -f ' + shlex.quote(path))
		if status != 0:
			return None
		encoded = self.check('base64 -w0 ' + shlex.quote(path))
		return base64.b64decode(encoded).decode(convergeit_global_object.default_encoding)

	def file_mode(self, path):
		return self.check('stat -c %a ' + shlex.quote(path)).strip().zfill(4)

	def write_file(self, path, content, mode=None):
		quoted = shlex.quote(path)
		if content is None:
			self.check('touch ' + quoted)
		else:
			encoded = base64.b64encode(content.encode(convergeit_global_object.default_encoding)).decode()
			# Write to a temporary file and move it, so a failed write leaves the old file.
			self.check('sh -c ' + shlex.quote('echo ' + encoded + ' | base64 -d > ' + quoted + '.convergeit && mv ' + quoted + '.convergeit ' + quoted))
		if mode is not None:
			self.check('chmod ' + mode + ' ' + quoted)

	def remove_file(self, path):
		self.check('rm -f ' + shlex.quote(path))

	def is_port_listening(self, port):
		status, output = self.run('ss -ltnH ' + shlex.quote('sport = :' + str(int(port))))
		return status == 0 and output.strip() != ''

	def close(self):
		self.session.close()
