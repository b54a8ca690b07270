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

"""Verification helpers for catalog modules.

Structural checks look at a compiled catalog without touching anything.
Behavioral checks apply a catalog to a target and then look at the target,
including applying a second time to check nothing changes.
"""

import logging
from convergeit.convergeit_catalog import compile_catalog
from convergeit.convergeit_engine import converge
from convergeit.convergeit_global import convergeit_global_object
from convergeit.convergeit_graph import BEFORE, EDGE_KINDS
from convergeit.convergeit_resource import ConvergeItException, to_identity


class IdempotencyError(ConvergeItException):
	"""A run that should have changed nothing changed something.
	"""

	def __init__(self, report):
		self.report = report
		ConvergeItException.__init__(self, 'Expected no changes, but ' + str(len(report.changed)) + ' resource(s) changed:\n\t' + '\n\t'.join([result.message for result in report.changed]))


class CatalogInspector(object):
	"""Answers questions about a compiled catalog.
	"""

	def __init__(self, catalog):
		self.catalog = catalog
		self.graph   = catalog.graph

	def has_resource(self, ref):
		return to_identity(ref) in self.graph.resources

	def resource_attributes(self, ref):
		"""Returns a copy of the resource's attributes. KeyError if absent.
		"""
		return dict(self.catalog.resource(ref).attributes)

	def has_edge(self, source, target, kind=BEFORE):
		"""True if there is a direct edge of this kind.
		"""
		if kind not in EDGE_KINDS:
			raise ConvergeItException('Unknown relationship kind: ' + repr(kind))
		source = to_identity(source)
		target = to_identity(target)
		if source not in self.graph.resources:
			return False
		return any(edge.target == target and edge.kind == kind for edge in self.graph.edges_from(source))

	def precedes(self, source, target):
		"""True if source is ordered before target, directly or through any
		number of intermediate resources.
		"""
		source = to_identity(source)
		if source not in self.graph.resources:
			return False
		return self.graph.reachable(source, target)

	def is_acyclic(self):
		return self.graph.is_acyclic()


class CatalogAssertions(object):
	"""Mixin for unittest.TestCase with catalog assertions.
	"""

	def assertContainsResource(self, catalog, ref, **attributes):
		inspector = CatalogInspector(catalog)
		if not inspector.has_resource(ref):
			self.fail('Catalog ' + catalog.name + ' does not contain ' + str(to_identity(ref)))
		if attributes:
			self.assertResourceAttributes(catalog, ref, attributes)

	def assertNotContainsResource(self, catalog, ref):
		if CatalogInspector(catalog).has_resource(ref):
			self.fail('Catalog ' + catalog.name + ' unexpectedly contains ' + str(to_identity(ref)))

	def assertResourceAttributes(self, catalog, ref, expected):
		actual = CatalogInspector(catalog).resource_attributes(ref)
		mismatched = dict((key, (actual.get(key), value)) for key, value in expected.items() if actual.get(key) != value)
		if mismatched:
			self.fail(str(to_identity(ref)) + ' attributes differ (actual, expected): ' + repr(mismatched))

	def assertEdge(self, catalog, source, target, kind=BEFORE):
		if not CatalogInspector(catalog).has_edge(source, target, kind):
			self.fail('No ' + kind + ' edge from ' + str(to_identity(source)) + ' to ' + str(to_identity(target)))

	def assertPrecedes(self, catalog, source, target):
		if not CatalogInspector(catalog).precedes(source, target):
			self.fail(str(to_identity(source)) + ' is not ordered before ' + str(to_identity(target)))

	def assertAcyclic(self, catalog):
		cycle = catalog.graph.find_cycle()
		if cycle:
			self.fail('Catalog has a cycle: ' + ' => '.join([str(member) for member in cycle]))

	def assertCompileFails(self, exception_class, source, facts, params=None):
		with self.assertRaises(exception_class) as context:
			compile_catalog(source, facts, params=params)
		return context.exception


class TargetProbe(object):
	"""Looks at externally observable state of a target.
	"""

	def __init__(self, target):
		self.target = target

	def is_port_listening(self, port):
		return self.target.is_port_listening(port)

	def service_status(self, name):
		status = self.target.service_status(name)
		return {'enabled': bool(status['enabled']), 'running': bool(status['running'])}

	def package_installed(self, name):
		return self.target.package_installed(name)


def apply_manifest(catalog, target, catch_failures=True, catch_changes=False, noop=False):
	"""Applies catalog to target the way an acceptance test does.

	@param catch_failures: Raise ConvergenceError if anything failed.
	@param catch_changes:  Raise IdempotencyError if anything changed.
	"""
	report = converge(catalog, target, noop=noop, strict=catch_failures)
	if catch_changes and report.changed:
		raise IdempotencyError(report)
	return report


def check_idempotent(catalog, target):
	"""Applies catalog twice; the second run must change nothing.

	Returns both reports.
	"""
	convergeit_global_object.log('Checking ' + catalog.name + ' is idempotent', level=logging.DEBUG)
	first = apply_manifest(catalog, target, catch_failures=True)
	second = apply_manifest(catalog, target, catch_failures=True, catch_changes=True)
	return first, second
