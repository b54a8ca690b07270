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

"""Builds and validates the dependency graph of a catalog.

Edges are either 'before' (ordering only) or 'notify' (ordering, plus a
refresh of the target when the source changed). 'require' and 'subscribe'
are the same relationships declared from the other end.
"""

import collections
import heapq
import logging
from convergeit.convergeit_global import convergeit_global_object
from convergeit.convergeit_resource import ConvergeItException, CycleDetectedError, DanglingEdgeError, DuplicateResourceError, to_identity


BEFORE    = 'before'
NOTIFY    = 'notify'
REQUIRE   = 'require'
SUBSCRIBE = 'subscribe'
EDGE_KINDS = (BEFORE, NOTIFY)


class Edge(collections.namedtuple('Edge', ['source', 'target', 'kind'])):
	__slots__ = ()

	def __str__(self):
		if self.kind == NOTIFY:
			return str(self.source) + ' ~> ' + str(self.target)
		return str(self.source) + ' -> ' + str(self.target)


def make_edge(source, target, kind=BEFORE):
	"""Returns a normalised Edge. require/subscribe are turned round into
	before/notify.
	"""
	source = to_identity(source)
	target = to_identity(target)
	if kind == REQUIRE:
		return Edge(target, source, BEFORE)
	if kind == SUBSCRIBE:
		return Edge(target, source, NOTIFY)
	if kind not in EDGE_KINDS:
		raise ConvergeItException('Unknown relationship kind: ' + repr(kind))
	return Edge(source, target, kind)


class DependencyGraph(object):
	"""Resources keyed by identity, in declaration order, plus the edges
	between them.
	"""

	def __init__(self):
		self.resources = collections.OrderedDict()
		self.edges     = []
		self._out      = {}
		self._in       = {}
		self._index    = {}

	def __len__(self):
		return len(self.resources)

	def __contains__(self, ref):
		return to_identity(ref) in self.resources

	def add_resource(self, resource):
		identity = resource.identity
		if identity in self.resources:
			raise DuplicateResourceError(identity)
		self._index[identity] = len(self.resources)
		self.resources[identity] = resource
		self._out[identity] = []
		self._in[identity] = []

	def add_edge(self, edge):
		for end in (edge.source, edge.target):
			if end not in self.resources:
				raise DanglingEdgeError(edge, end)
		# Declaring the same relationship twice is harmless.
		if edge in self.edges:
			return
		self.edges.append(edge)
		self._out[edge.source].append(edge)
		self._in[edge.target].append(edge)

	def edges_from(self, ref):
		return list(self._out[to_identity(ref)])

	def edges_to(self, ref):
		return list(self._in[to_identity(ref)])

	def successors(self, ref):
		seen = []
		for edge in self._out[to_identity(ref)]:
			if edge.target not in seen:
				seen.append(edge.target)
		return seen

	def predecessors(self, ref):
		seen = []
		for edge in self._in[to_identity(ref)]:
			if edge.source not in seen:
				seen.append(edge.source)
		return seen

	def descendants(self, ref):
		"""Returns every identity reachable from ref by following edges.
		"""
		found = set()
		todo = [to_identity(ref)]
		while todo:
			for successor in self.successors(todo.pop()):
				if successor not in found:
					found.add(successor)
					todo.append(successor)
		return found

	def reachable(self, source, target):
		return to_identity(target) in self.descendants(source)

	def find_cycle(self):
		"""Returns the members of one cycle in edge order, or None.
		"""
		white, grey, black = 0, 1, 2
		colour = dict((identity, white) for identity in self.resources)
		for start in self.resources:
			if colour[start] != white:
				continue
			colour[start] = grey
			path  = [start]
			stack = [iter(self.successors(start))]
			while stack:
				successor = next(stack[-1], None)
				if successor is None:
					colour[path.pop()] = black
					stack.pop()
				elif colour[successor] == grey:
					return path[path.index(successor):]
				elif colour[successor] == white:
					colour[successor] = grey
					path.append(successor)
					stack.append(iter(self.successors(successor)))
		return None

	def is_acyclic(self):
		return self.find_cycle() is None

	def validate(self):
		cycle = self.find_cycle()
		if cycle:
			raise CycleDetectedError(cycle)

	def topological_order(self):
		"""Returns identities so that every edge's source comes before its
		target. Among resources free to go next, the one declared first wins.
		"""
		indegree = dict((identity, len(self.predecessors(identity))) for identity in self.resources)
		ready = [self._index[identity] for identity, count in indegree.items() if count == 0]
		heapq.heapify(ready)
		by_index = list(self.resources)
		order = []
		while ready:
			identity = by_index[heapq.heappop(ready)]
			order.append(identity)
			for successor in self.successors(identity):
				indegree[successor] -= 1
				if indegree[successor] == 0:
					heapq.heappush(ready, self._index[successor])
		if len(order) != len(self.resources):
			self.validate()
		return order

	def to_dot(self, name='convergeit'):
		"""Returns a graphviz digraph of the resources and edges.
		"""
		digraph = 'digraph "' + name + '" {\n'
		for identity in self.resources:
			digraph += '"' + str(identity) + '";\n'
		for edge in self.edges:
			if edge.kind == NOTIFY:
				digraph += '"' + str(edge.source) + '"->"' + str(edge.target) + '" [style=dashed,label="notify"];\n'
			else:
				digraph += '"' + str(edge.source) + '"->"' + str(edge.target) + '";\n'
		digraph += '}'
		return digraph


def build_graph(resources, edges):
	"""Assembles resources and edges into a validated DAG.

	Raises DuplicateResourceError, DanglingEdgeError or CycleDetectedError.
	"""
	convergeit_global_object.log('PHASE: dependencies', level=logging.DEBUG)
	graph = DependencyGraph()
	for resource in resources:
		graph.add_resource(resource)
	for edge in edges:
		graph.add_edge(edge)
	graph.validate()
	convergeit_global_object.log('Graph has ' + str(len(graph.resources)) + ' resources and ' + str(len(graph.edges)) + ' edges', level=logging.DEBUG)
	return graph
