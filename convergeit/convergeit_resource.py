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

"""Resource types a ConvergeIt catalog is made of, and the exceptions raised
while compiling and applying them.

A resource is identified by its type and name (eg Package[slapd]), carries the
attributes it should have, and knows how to query and change the one entity it
manages on a target.
"""

from abc import ABCMeta, abstractmethod
import collections
import logging
import re
import jinja2
from convergeit.convergeit_global import convergeit_global_object


# The exceptions live here as this module is 'top level' and doesn't depend on
# any other convergeit files bar the global object.
class ConvergeItException(Exception):
	"""Base class for all ConvergeIt errors.
	"""
	pass


class DuplicateResourceError(ConvergeItException):
	"""Two resources with the same identity were declared in one catalog.
	"""

	def __init__(self, identity):
		self.identity = identity
		ConvergeItException.__init__(self, 'Duplicate declaration: ' + str(identity) + ' is already declared in this catalog')


class DanglingEdgeError(ConvergeItException):
	"""An edge references a resource that is not in the catalog.
	"""

	def __init__(self, edge, missing):
		self.edge    = edge
		self.missing = missing
		ConvergeItException.__init__(self, 'Could not find resource ' + str(missing) + ' for relationship ' + str(edge))


class CycleDetectedError(ConvergeItException):
	"""The declared edges form a cycle. members holds the identities on the
	cycle, in edge order.
	"""

	def __init__(self, members):
		self.members = list(members)
		loop = self.members + self.members[:1]
		ConvergeItException.__init__(self, 'Found 1 dependency cycle: (' + ' => '.join([str(member) for member in loop]) + ')')


class UnmappedFactError(ConvergeItException):
	"""A fact value has no entry in an exhaustive fact mapping.
	"""

	def __init__(self, fact, value, known=()):
		self.fact  = fact
		self.value = value
		self.known = list(known)
		msg = 'No mapping for ' + fact + '=' + repr(value)
		if self.known:
			msg += ' (known values: ' + ', '.join(self.known) + ')'
		ConvergeItException.__init__(self, msg)


class ResourceError(ConvergeItException):
	"""An error tied to one resource. cause is the underlying exception.
	"""

	def __init__(self, identity, cause):
		self.identity = identity
		self.cause    = cause
		ConvergeItException.__init__(self, str(identity) + ': ' + str(cause))


class ResourceQueryError(ResourceError):
	"""The managed entity could not be inspected.
	"""
	pass


class ResourceApplyError(ResourceError):
	"""The managed entity could not be changed to match the desired state.
	"""
	pass


class ConvergenceError(ConvergeItException):
	"""Raised at the end of a run in which one or more resources failed.
	report is the complete ConvergenceReport for the run.
	"""

	def __init__(self, report):
		self.report   = report
		self.failures = report.failures
		msg = str(len(self.failures)) + ' resource(s) failed to converge:'
		for result in self.failures:
			msg += '\n\t' + result.message
		skipped = report.skipped
		if skipped:
			msg += '\n' + str(len(skipped)) + ' resource(s) skipped: ' + ', '.join([str(result.identity) for result in skipped])
		ConvergeItException.__init__(self, msg)


UNCHANGED = 'unchanged'
CHANGED   = 'changed'
FAILED    = 'failed'
SKIPPED   = 'skipped'

IDENTITY_RE = re.compile(r'^([A-Za-z][A-Za-z0-9_:]*)\[(.+)\]$')


class Identity(collections.namedtuple('Identity', ['type', 'name'])):
	"""Stable identity of a resource: lower case type tag plus name.
	"""
	__slots__ = ()

	def __str__(self):
		return '::'.join([part.capitalize() for part in self.type.split('::')]) + '[' + self.name + ']'

	@classmethod
	def parse(cls, ref):
		"""Parses a reference of the form Type[name].
		"""
		match = IDENTITY_RE.match(ref.strip())
		if match is None:
			raise ConvergeItException('Invalid resource reference: ' + repr(ref) + ' (expected Type[name])')
		return cls(match.group(1).lower(), match.group(2))


def to_identity(ref):
	"""Returns an Identity for a Resource, Identity, (type, name) pair or a
	'Type[name]' string.
	"""
	if isinstance(ref, Identity):
		return ref
	if isinstance(ref, Resource):
		return ref.identity
	if isinstance(ref, tuple) and len(ref) == 2:
		return Identity(ref[0].lower(), ref[1])
	if isinstance(ref, str):
		return Identity.parse(ref)
	raise ConvergeItException('Cannot make a resource identity from: ' + repr(ref))


class ApplyResult(object):
	"""Outcome of converging one resource.
	"""

	def __init__(self, identity, status, message='', changes=None, noop=False, error=None):
		self.identity  = identity
		self.status    = status
		self.message   = message or str(identity) + ': ' + status
		self.changes   = changes or []
		self.noop      = noop
		self.error     = error
		# Set by the engine when a notify edge triggered this resource's refresh.
		self.refreshed = False

	def __str__(self):
		return self.message

	def __repr__(self):
		return 'ApplyResult(' + str(self.identity) + ', ' + self.status + ')'


def render_template(source, context=None):
	"""Renders a jinja2 template string. Undefined variables are an error
	rather than an empty string.
	"""
	environment = jinja2.Environment(undefined=jinja2.StrictUndefined, keep_trailing_newline=True)
	try:
		return environment.from_string(source).render(**(context or {}))
	except jinja2.TemplateError as e:
		raise ConvergeItException('Failed to render template: ' + str(e))


class Resource(metaclass=ABCMeta):
	"""Base class for every resource type.

	Subclasses name the attributes compared against the target in
	'properties', and implement retrieve() and sync(). Everything else in
	'attributes' (eg the package name) is parameter, not state.
	"""

	properties = ()

	def __init__(self, type_tag, name, attributes=None):
		if not isinstance(type_tag, str) or type_tag == '':
			raise ConvergeItException('Resource type must be a non-empty string, got: ' + repr(type_tag))
		if not isinstance(name, str) or name == '':
			raise ConvergeItException(type_tag + ' resource name must be a non-empty string, got: ' + repr(name))
		self.identity   = Identity(type_tag.lower(), name)
		self.attributes = dict(attributes or {})

	def __repr__(self):
		return str(self.identity)

	@property
	def type_tag(self):
		return self.identity.type

	@property
	def name(self):
		return self.identity.name

	def desired(self):
		"""Returns the managed properties that have a desired value.
		"""
		return collections.OrderedDict((prop, self.attributes[prop]) for prop in self.properties if self.attributes.get(prop) is not None)

	def changes(self, current):
		"""Returns (property, current value, desired value) for every property
		that is out of sync.
		"""
		changes = []
		for prop, value in self.desired().items():
			if current.get(prop) != value:
				changes.append((prop, current.get(prop), value))
		return changes

	def insync(self, current):
		return self.changes(current) == []

	def query_state(self, target):
		"""Returns the observed state of the managed entity.

		Raises ResourceQueryError if it cannot be inspected.
		"""
		try:
			return self.retrieve(target)
		except ResourceQueryError:
			raise
		except Exception as e:
			raise ResourceQueryError(self.identity, e)

	def apply(self, target, noop=False):
		"""Makes the managed entity match the desired attributes.

		@param target: Target to converge.
		@param noop:   Compare only, do not change anything.

		@rtype:        ApplyResult
		"""
		current = self.query_state(target)
		changes = self.changes(current)
		if not changes:
			convergeit_global_object.log(str(self.identity) + ' is in sync', level=logging.DEBUG)
			return ApplyResult(self.identity, UNCHANGED)
		msg = str(self.identity) + ': ' + '; '.join([prop + ' changed ' + repr(old) + ' to ' + repr(new) for prop, old, new in changes])
		if noop:
			return ApplyResult(self.identity, CHANGED, message=msg + ' (noop)', changes=changes, noop=True)
		try:
			self.sync(target, current, changes)
		except Exception as e:
			raise ResourceApplyError(self.identity, e)
		return ApplyResult(self.identity, CHANGED, message=msg, changes=changes)

	def refresh(self, target):
		"""Runs the refresh action, eg a service restart. Returns True if the
		type has a refresh action.
		"""
		try:
			return bool(self.restart(target))
		except Exception as e:
			raise ResourceApplyError(self.identity, e)

	@abstractmethod
	def retrieve(self, target):
		"""Returns a dict of the current values of the managed properties.
		"""
		pass

	@abstractmethod
	def sync(self, target, current, changes):
		"""Changes the managed entity. Called only when out of sync.
		"""
		pass

	def restart(self, target):
		return False


def _check_value(type_tag, name, attribute, value, allowed):
	if value not in allowed:
		raise ConvergeItException(type_tag + '[' + name + ']: invalid value for ' + attribute + ': ' + repr(value) + ' (allowed: ' + ', '.join([str(a) for a in allowed]) + ')')


class Package(Resource):
	"""A package installed by the target's package manager.
	"""

	properties = ('ensure',)

	def __init__(self, title, name=None, ensure='present'):
		_check_value('Package', title, 'ensure', ensure, ('present', 'installed', 'absent'))
		if ensure == 'installed':
			ensure = 'present'
		Resource.__init__(self, 'package', title, {'name': name or title, 'ensure': ensure})

	def retrieve(self, target):
		if target.package_installed(self.attributes['name']):
			return {'ensure': 'present'}
		return {'ensure': 'absent'}

	def sync(self, target, current, changes):
		if self.attributes['ensure'] == 'present':
			target.install_package(self.attributes['name'])
		else:
			target.remove_package(self.attributes['name'])


class Service(Resource):
	"""A service run by the target's service manager. ensure and enable are
	managed independently; None leaves that property alone.
	"""

	properties = ('ensure', 'enable')

	def __init__(self, title, name=None, ensure='running', enable=None):
		_check_value('Service', title, 'ensure', ensure, ('running', 'stopped', None))
		_check_value('Service', title, 'enable', enable, (True, False, None))
		Resource.__init__(self, 'service', title, {'name': name or title, 'ensure': ensure, 'enable': enable})

	def retrieve(self, target):
		status = target.service_status(self.attributes['name'])
		return {'ensure': 'running' if status['running'] else 'stopped',
		        'enable': bool(status['enabled'])}

	def sync(self, target, current, changes):
		name = self.attributes['name']
		for prop, _, value in changes:
			if prop == 'ensure':
				if value == 'running':
					target.start_service(name)
				else:
					target.stop_service(name)
			elif prop == 'enable':
				if value:
					target.enable_service(name)
				else:
					target.disable_service(name)

	def restart(self, target):
		# Only a service that should be running, or already is, gets restarted.
		ensure = self.attributes['ensure']
		if ensure == 'stopped':
			return False
		if ensure is None and not target.service_status(self.attributes['name'])['running']:
			return False
		target.restart_service(self.attributes['name'])
		return True


class File(Resource):
	"""A file on the target; the generic config resource.

	Either content or a jinja2 template (rendered with context when the
	resource is declared) gives the file body. With neither, only presence
	and mode are managed.
	"""

	properties = ('ensure', 'content', 'mode')

	def __init__(self, path, content=None, template=None, context=None, mode=None, ensure='present'):
		_check_value('File', path, 'ensure', ensure, ('present', 'absent'))
		if template is not None:
			if content is not None:
				raise ConvergeItException('File[' + path + ']: content and template are mutually exclusive')
			content = render_template(template, context)
		if mode is not None:
			if not re.match('^[0-7]{3,4}$', str(mode)):
				raise ConvergeItException('File[' + path + ']: invalid mode: ' + repr(mode))
			mode = str(mode).zfill(4)
		Resource.__init__(self, 'file', path, {'path': path, 'ensure': ensure, 'content': content, 'mode': mode})

	def desired(self):
		if self.attributes['ensure'] == 'absent':
			return collections.OrderedDict([('ensure', 'absent')])
		return Resource.desired(self)

	def retrieve(self, target):
		path = self.attributes['path']
		content = target.read_file(path)
		if content is None:
			return {'ensure': 'absent', 'content': None, 'mode': None}
		return {'ensure': 'present', 'content': content, 'mode': target.file_mode(path)}

	def sync(self, target, current, changes):
		path = self.attributes['path']
		if self.attributes['ensure'] == 'absent':
			target.remove_file(path)
			return
		target.write_file(path, self.attributes['content'], self.attributes['mode'])
