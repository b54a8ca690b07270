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

"""The convergence engine: applies a compiled catalog to a target.

Resources are applied one at a time in topological order. A resource whose
dependency failed (or was itself skipped) is skipped. A resource with a
'notify' edge from a resource that changed in this run is refreshed once,
after it has been applied.
"""

import collections
import logging
import time
import texttable
from convergeit.convergeit_global import convergeit_global_object
from convergeit.convergeit_graph import NOTIFY
from convergeit.convergeit_resource import CHANGED, FAILED, SKIPPED, UNCHANGED, ApplyResult, ConvergenceError, ResourceApplyError, ResourceQueryError, to_identity


class ConvergenceReport(object):
	"""Per-resource results of one run, in the order they were applied.
	"""

	def __init__(self, catalog_name, noop=False):
		self.catalog_name = catalog_name
		self.noop         = noop
		self.results      = collections.OrderedDict()
		self.start_time   = time.time()
		self.end_time     = None

	def add(self, result):
		self.results[result.identity] = result

	def finish(self):
		self.end_time = time.time()

	def status(self, ref):
		return self.results[to_identity(ref)].status

	def _with_status(self, status):
		return [result for result in self.results.values() if result.status == status]

	@property
	def failures(self):
		return self._with_status(FAILED)

	@property
	def skipped(self):
		return self._with_status(SKIPPED)

	@property
	def changed(self):
		return self._with_status(CHANGED)

	@property
	def unchanged(self):
		return self._with_status(UNCHANGED)

	@property
	def succeeded(self):
		return self.failures == [] and self.skipped == []

	def summary(self):
		counts = collections.OrderedDict((status, 0) for status in (UNCHANGED, CHANGED, FAILED, SKIPPED))
		for result in self.results.values():
			counts[result.status] += 1
		return counts

	def raise_for_failures(self):
		if not self.succeeded:
			raise ConvergenceError(self)

	def render(self):
		"""Returns a table of per-resource results plus a summary line.
		"""
		table_list = [['Resource', 'Status', 'Refreshed', 'Message']]
		for result in self.results.values():
			table_list.append([str(result.identity), result.status + (' (noop)' if result.noop else ''), 'yes' if result.refreshed else '', result.message])
		table = texttable.Texttable()
		table.set_deco(texttable.Texttable.HEADER)
		table.add_rows(table_list)
		table.set_cols_width([35, 16, 9, 70])
		summary = ', '.join([str(count) + ' ' + status for status, count in self.summary().items()])
		elapsed = ''
		if self.end_time is not None:
			elapsed = ' in %.2f seconds' % (self.end_time - self.start_time)
		return table.draw() + '\n\n' + self.catalog_name + ': ' + summary + elapsed


class ConvergenceEngine(object):

	def __init__(self, target, noop=False):
		self.target = target
		self.noop   = noop

	def run(self, catalog):
		"""Applies the catalog and returns the ConvergenceReport. Resource
		failures are recorded in the report, not raised.
		"""
		graph = catalog.graph
		report = ConvergenceReport(catalog.name, noop=self.noop)
		convergeit_global_object.log('PHASE: converge ' + catalog.name + (' (noop)' if self.noop else ''), level=logging.DEBUG)
		for identity in graph.topological_order():
			resource = graph.resources[identity]
			blocked = [str(dependency) for dependency in graph.predecessors(identity) if report.results[dependency].status in (FAILED, SKIPPED)]
			if blocked:
				result = ApplyResult(identity, SKIPPED, message=str(identity) + ': skipped because of failed dependencies: ' + ', '.join(blocked))
				convergeit_global_object.log(result.message, level=logging.WARNING)
				report.add(result)
				continue
			result = self.apply_resource(resource)
			if result.status != FAILED:
				self.process_events(graph, resource, result, report)
			report.add(result)
		report.finish()
		convergeit_global_object.log('Finished ' + catalog.name + ': ' + repr(dict(report.summary())), level=logging.INFO)
		return report

	def apply_resource(self, resource):
		convergeit_global_object.log('Considering: ' + str(resource.identity), level=logging.DEBUG)
		try:
			result = resource.apply(self.target, noop=self.noop)
		except (ResourceQueryError, ResourceApplyError) as e:
			convergeit_global_object.log(str(e), level=logging.ERROR)
			return ApplyResult(resource.identity, FAILED, message=str(e), error=e)
		if result.status == CHANGED:
			convergeit_global_object.log(result.message, level=logging.INFO)
		return result

	def process_events(self, graph, resource, result, report):
		"""Refreshes resource once if any of its notify sources changed.
		"""
		sources = [edge.source for edge in graph.edges_to(resource) if edge.kind == NOTIFY and report.results[edge.source].status == CHANGED]
		if not sources:
			return
		if self.noop:
			result.message += ' (noop: would have triggered refresh from ' + str(len(sources)) + ' events)'
			return
		try:
			result.refreshed = resource.refresh(self.target)
		except ResourceApplyError as e:
			convergeit_global_object.log('Refresh failed: ' + str(e), level=logging.ERROR)
			result.status  = FAILED
			result.message = str(e)
			result.error   = e
			return
		if result.refreshed:
			convergeit_global_object.log(str(resource.identity) + ': triggered refresh from ' + str(len(sources)) + ' events', level=logging.INFO)


def converge(catalog, target, noop=False, strict=True):
	"""Applies catalog to target.

	@param noop:   Report what would change without changing anything.
	@param strict: Raise ConvergenceError (carrying the report) if any
	               resource failed, after every independent resource has
	               been applied.

	@rtype:        ConvergenceReport
	"""
	report = ConvergenceEngine(target, noop=noop).run(catalog)
	if strict:
		report.raise_for_failures()
	return report
