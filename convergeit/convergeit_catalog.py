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

"""Catalog compilation: fact sets, catalog fragments and modules, and the
compiled Catalog handed to the engine.

A catalog module declares its resources for a given fact set. Larger modules
are split into fragments (eg install, config, service) which are composed,
in order, into one fragment before the graph is validated once.
"""

from abc import ABCMeta, abstractmethod
from collections.abc import Mapping
import logging
import texttable
from convergeit.convergeit_global import convergeit_global_object
from convergeit.convergeit_graph import BEFORE, EDGE_KINDS, NOTIFY, REQUIRE, SUBSCRIBE, Edge, build_graph, make_edge
from convergeit.convergeit_resource import ConvergeItException, UnmappedFactError, to_identity


class FactSet(Mapping):
	"""Read-only set of facts about the target, eg os_family.
	"""

	def __init__(self, facts=None, **kwargs):
		self._facts = dict(facts or {})
		self._facts.update(kwargs)

	def __getitem__(self, key):
		return self._facts[key]

	def __iter__(self):
		return iter(self._facts)

	def __len__(self):
		return len(self._facts)

	def __repr__(self):
		return 'FactSet(' + repr(self._facts) + ')'

	def merged(self, other):
		"""Returns a new FactSet with other's facts laid over these.
		"""
		facts = dict(self._facts)
		facts.update(other or {})
		return FactSet(facts)


def select(facts, fact_name, mapping):
	"""Resolves an attribute from a fact with an exhaustive mapping.

	There is no default: a fact value missing from the mapping (or a missing
	fact) raises UnmappedFactError.

	@param facts:     FactSet or dict.
	@param fact_name: Fact to switch on, eg 'os_family'.
	@param mapping:   Dict of fact value to attribute value.
	"""
	value = facts.get(fact_name)
	if value is None or value not in mapping:
		raise UnmappedFactError(fact_name, value, known=sorted(mapping))
	return mapping[value]


class CatalogFragment(object):
	"""Ordered resources and edges; a sub-catalog.
	"""

	def __init__(self, name):
		self.name      = name
		self.resources = []
		self.edges     = []

	def __repr__(self):
		return 'CatalogFragment(' + self.name + ', ' + str(len(self.resources)) + ' resources)'

	def is_empty(self):
		return self.resources == []

	def add(self, *resources):
		"""Adds resources. Returns the last one added.
		"""
		for resource in resources:
			self.resources.append(resource)
		return resources[-1] if resources else None

	def relate(self, source, target, kind):
		self.edges.append(make_edge(source, target, kind))

	def before(self, source, target):
		self.relate(source, target, BEFORE)

	def notify(self, source, target):
		self.relate(source, target, NOTIFY)

	def require(self, source, target):
		self.relate(source, target, REQUIRE)

	def subscribe(self, source, target):
		self.relate(source, target, SUBSCRIBE)

	def extend(self, other):
		self.resources.extend(other.resources)
		self.edges.extend(other.edges)


def compose(name, fragments, links=None):
	"""Merges fragments, in order, into one fragment.

	links[i] ('before' or 'notify') relates fragments[i] to fragments[i+1]:
	every resource of one gets an edge to every resource of the next.
	Empty fragments are passed over; the edge across them is 'notify' only
	when every link passed over was 'notify'.
	"""
	if links is None:
		links = [BEFORE] * (len(fragments) - 1)
	if len(links) != max(len(fragments) - 1, 0):
		raise ConvergeItException(name + ': ' + str(len(fragments)) + ' fragments need ' + str(len(fragments) - 1) + ' links, got ' + str(len(links)))
	for link in links:
		if link not in EDGE_KINDS:
			raise ConvergeItException(name + ': unknown link between fragments: ' + repr(link))
	merged = CatalogFragment(name)
	for fragment in fragments:
		merged.extend(fragment)
	previous = None
	pending  = None
	for index, fragment in enumerate(fragments):
		if previous is not None:
			link = links[index - 1]
			if link == NOTIFY and pending in (None, NOTIFY):
				pending = NOTIFY
			else:
				pending = BEFORE
		if fragment.is_empty():
			continue
		if previous is not None:
			for source in previous.resources:
				for target in fragment.resources:
					merged.edges.append(Edge(source.identity, target.identity, pending))
		previous = fragment
		pending  = None
	return merged


def to_bool(value):
	if isinstance(value, bool):
		return value
	if str(value).lower() in ('yes', 'y', 'true', 't', '1', 'on'):
		return True
	if str(value).lower() in ('no', 'n', 'false', 'f', '0', 'off'):
		return False
	raise ConvergeItException('Not a boolean: ' + repr(value))


class CatalogModule(metaclass=ABCMeta):
	"""Class that defines what a ConvergeIt catalog module must implement.

	A module file exposes a module() function returning an instance.
	"""

	def __init__(self, module_id, description='', maintainer='', parameters=None):
		if not isinstance(module_id, str):
			raise ConvergeItException(str(module_id) + '\'s module_id is not a string')
		self.module_id   = module_id
		self.description = description
		self.maintainer  = maintainer
		# Parameter defaults; their types decide how configured strings are read.
		self.parameters  = dict(parameters or {})

	def get_config(self, cfg=None):
		"""Returns the module's parameters: defaults, overlaid by cfg.

		Unknown parameters are rejected.
		"""
		params = dict(self.parameters)
		for key, value in (cfg or {}).items():
			if key not in self.parameters:
				raise ConvergeItException(self.module_id + ': unknown parameter: ' + key)
			default = self.parameters[key]
			if isinstance(default, bool):
				value = to_bool(value)
			elif isinstance(default, int) and not isinstance(value, int):
				value = int(value)
			params[key] = value
		return params

	@abstractmethod
	def declare(self, facts, params):
		"""Returns the CatalogFragment for these facts and parameters.
		"""
		pass


class Catalog(object):
	"""The compiled, validated resource set and edges for one fact set.
	Created per compilation; not to be changed afterwards.
	"""

	def __init__(self, name, graph, facts):
		self.name      = name
		self.graph     = graph
		self.facts     = facts
		self.resources = tuple(graph.resources.values())
		self.edges     = tuple(graph.edges)

	def __len__(self):
		return len(self.resources)

	def __contains__(self, ref):
		return ref in self.graph

	def __repr__(self):
		return 'Catalog(' + self.name + ', ' + str(len(self.resources)) + ' resources, ' + str(len(self.edges)) + ' edges)'

	def resource(self, ref):
		identity = to_identity(ref)
		if identity not in self.graph.resources:
			raise KeyError(str(identity))
		return self.graph.resources[identity]

	def render(self):
		"""Returns a table of the catalog's resources and relationships.
		"""
		table_list = [['Resource', 'Attributes', 'Before', 'Notify']]
		for resource in self.resources:
			attributes = ', '.join([key + '=' + repr(value) for key, value in sorted(resource.attributes.items()) if value is not None and key != 'content'])
			before = [str(edge.target) for edge in self.graph.edges_from(resource) if edge.kind == BEFORE]
			notify = [str(edge.target) for edge in self.graph.edges_from(resource) if edge.kind == NOTIFY]
			table_list.append([str(resource.identity), attributes, '\n'.join(before), '\n'.join(notify)])
		table = texttable.Texttable()
		table.set_deco(texttable.Texttable.HEADER)
		table.add_rows(table_list)
		table.set_cols_width([35, 45, 30, 30])
		return table.draw()


def compile_catalog(source, facts, params=None):
	"""Compiles a CatalogModule, a CatalogFragment, or a list of either, into
	a validated Catalog.

	@param source: What to compile.
	@param facts:  FactSet or dict of facts.
	@param params: Parameters for a single module (see CatalogModule.get_config).
	"""
	if not isinstance(facts, FactSet):
		facts = FactSet(facts)
	sources = source if isinstance(source, (list, tuple)) else [source]
	if not sources:
		raise ConvergeItException('Nothing to compile')
	if params and len(sources) > 1:
		raise ConvergeItException('Parameters can only be given when compiling a single module')
	fragments = []
	for item in sources:
		if isinstance(item, CatalogModule):
			convergeit_global_object.log('PHASE: compile ' + item.module_id + ' with facts ' + repr(dict(facts)), level=logging.DEBUG)
			fragment = item.declare(facts, item.get_config(params))
			if not isinstance(fragment, CatalogFragment):
				raise ConvergeItException(item.module_id + ': declare() must return a CatalogFragment, got: ' + repr(fragment))
			fragments.append(fragment)
		elif isinstance(item, CatalogFragment):
			fragments.append(item)
		else:
			raise ConvergeItException('Cannot compile: ' + repr(item))
	name = '+'.join([fragment.name for fragment in fragments])
	resources = []
	edges = []
	for fragment in fragments:
		resources.extend(fragment.resources)
		edges.extend(fragment.edges)
	catalog = Catalog(name, build_graph(resources, edges), facts)
	convergeit_global_object.log('Compiled catalog ' + repr(catalog), level=logging.INFO)
	return catalog
