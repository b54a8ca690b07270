import unittest
from convergeit.convergeit_graph import BEFORE, NOTIFY, REQUIRE, SUBSCRIBE, Edge, build_graph, make_edge
from convergeit.convergeit_resource import ConvergeItException, CycleDetectedError, DanglingEdgeError, DuplicateResourceError, Identity, Package, Service


def packages(*names):
	return [Package(name) for name in names]


class TestEdges(unittest.TestCase):

	def test_require_is_reversed_before(self):
		self.assertEqual(make_edge('Service[slapd]', 'Package[slapd]', REQUIRE), Edge(Identity('package', 'slapd'), Identity('service', 'slapd'), BEFORE))

	def test_subscribe_is_reversed_notify(self):
		self.assertEqual(make_edge('Service[slapd]', 'File[/etc/default/slapd]', SUBSCRIBE).kind, NOTIFY)

	def test_unknown_kind(self):
		self.assertRaises(ConvergeItException, make_edge, 'Package[a]', 'Package[b]', 'after')

	def test_str(self):
		self.assertEqual(str(make_edge('Package[a]', 'Service[a]')), 'Package[a] -> Service[a]')
		self.assertEqual(str(make_edge('Package[a]', 'Service[a]', NOTIFY)), 'Package[a] ~> Service[a]')


class TestBuildGraph(unittest.TestCase):

	def test_duplicate(self):
		with self.assertRaises(DuplicateResourceError) as context:
			build_graph(packages('a', 'b', 'a'), [])
		self.assertEqual(context.exception.identity, Identity('package', 'a'))

	def test_same_title_different_type(self):
		graph = build_graph([Package('slapd'), Service('slapd')], [])
		self.assertEqual(len(graph), 2)

	def test_dangling(self):
		with self.assertRaises(DanglingEdgeError) as context:
			build_graph(packages('a'), [make_edge('Package[a]', 'Package[zz]')])
		self.assertEqual(context.exception.missing, Identity('package', 'zz'))

	def test_cycle(self):
		edges = [make_edge('Package[a]', 'Package[b]'), make_edge('Package[b]', 'Package[c]'), make_edge('Package[c]', 'Package[a]')]
		with self.assertRaises(CycleDetectedError) as context:
			build_graph(packages('a', 'b', 'c', 'd'), edges)
		self.assertEqual(set(context.exception.members), set([Identity('package', n) for n in 'abc']))
		self.assertIn('Found 1 dependency cycle: (Package[a] => Package[b] => Package[c] => Package[a])', str(context.exception))

	def test_self_loop(self):
		self.assertRaises(CycleDetectedError, build_graph, packages('a'), [make_edge('Package[a]', 'Package[a]')])

	def test_long_chain(self):
		chain = packages(*['p' + str(i) for i in range(1500)])
		edges = [make_edge(chain[i], chain[i + 1]) for i in range(len(chain) - 1)]
		graph = build_graph(chain, edges)
		self.assertTrue(graph.is_acyclic())
		self.assertEqual(graph.topological_order()[-1], Identity('package', 'p1499'))

	def test_long_cycle(self):
		chain = packages(*['p' + str(i) for i in range(1500)])
		edges = [make_edge(chain[i], chain[i + 1]) for i in range(len(chain) - 1)]
		edges.append(make_edge(chain[-1], chain[0]))
		with self.assertRaises(CycleDetectedError) as context:
			build_graph(chain, edges)
		self.assertEqual(len(context.exception.members), 1500)

	def test_repeated_edge_kept_once(self):
		graph = build_graph(packages('a', 'b'), [make_edge('Package[a]', 'Package[b]'), make_edge('Package[b]', 'Package[a]', REQUIRE)])
		self.assertEqual(len(graph.edges), 1)


class TestOrdering(unittest.TestCase):

	def test_declaration_order_without_edges(self):
		graph = build_graph(packages('c', 'a', 'b'), [])
		self.assertEqual([identity.name for identity in graph.topological_order()], ['c', 'a', 'b'])

	def test_edges_win_over_declaration_order(self):
		graph = build_graph(packages('a', 'b', 'c'), [make_edge('Package[c]', 'Package[a]'), make_edge('Package[b]', 'Package[c]', NOTIFY)])
		self.assertEqual([identity.name for identity in graph.topological_order()], ['b', 'c', 'a'])

	def test_reachable_is_transitive(self):
		graph = build_graph(packages('a', 'b', 'c'), [make_edge('Package[a]', 'Package[b]'), make_edge('Package[b]', 'Package[c]')])
		self.assertTrue(graph.reachable('Package[a]', 'Package[c]'))
		self.assertFalse(graph.reachable('Package[c]', 'Package[a]'))
		self.assertEqual(graph.predecessors('Package[b]'), [Identity('package', 'a')])

	def test_to_dot(self):
		graph = build_graph([Package('slapd'), Service('slapd')], [make_edge('Package[slapd]', 'Service[slapd]', NOTIFY)])
		dot = graph.to_dot(name='openldap')
		self.assertTrue(dot.startswith('digraph "openldap" {'))
		self.assertIn('"Package[slapd]"->"Service[slapd]" [style=dashed,label="notify"];', dot)


if __name__ == '__main__':
	unittest.main()
