import io
import os
import shutil
import tempfile
import unittest
from unittest import mock
from convergeit import convergeit_main
from convergeit.convergeit_global import convergeit_global_object

OPENLDAP_MODULE = os.path.join(os.path.dirname(os.path.abspath(__file__)), '..', 'library', 'openldap', 'openldap.py')


class TestMain(unittest.TestCase):

	def setUp(self):
		# Keep any real ~/.convergeit/config out of the way.
		self.home = tempfile.mkdtemp()
		self.env = mock.patch.dict(os.environ, {'HOME': self.home})
		self.env.start()

	def tearDown(self):
		self.env.stop()
		shutil.rmtree(self.home)

	def run_main(self, argv):
		with mock.patch('sys.stdout', new_callable=io.StringIO) as stdout:
			exit_code = convergeit_main.main(argv)
		return exit_code, stdout.getvalue()

	def test_version(self):
		exit_code, output = self.run_main(['version'])
		self.assertEqual(exit_code, convergeit_main.EXIT_OK)
		self.assertIn('ConvergeIt version: ', output)

	def test_compile(self):
		exit_code, output = self.run_main(['compile', OPENLDAP_MODULE])
		self.assertEqual(exit_code, convergeit_main.EXIT_OK)
		self.assertIn('Package[openldap-servers]', output)
		self.assertIn('Service[slapd]', output)

	def test_compile_redhat_fact(self):
		exit_code, output = self.run_main(['compile', OPENLDAP_MODULE, '-f', 'os_family=RedHat'])
		self.assertEqual(exit_code, convergeit_main.EXIT_OK)
		self.assertIn("name='openldap-servers'", output)

	def test_unmapped_fact_is_structural(self):
		exit_code, _ = self.run_main(['compile', OPENLDAP_MODULE, '-f', 'os_family=Solaris'])
		self.assertEqual(exit_code, convergeit_main.EXIT_STRUCTURAL)

	def test_depgraph(self):
		exit_code, output = self.run_main(['depgraph', OPENLDAP_MODULE, '-s', 'module', 'manage_config', 'yes'])
		self.assertEqual(exit_code, convergeit_main.EXIT_OK)
		self.assertIn('digraph "openldap" {', output)
		self.assertIn('"File[/etc/default/slapd]"->"Service[slapd]" [style=dashed,label="notify"];', output)

	def test_apply(self):
		exit_code, output = self.run_main(['apply', OPENLDAP_MODULE])
		self.assertEqual(exit_code, convergeit_main.EXIT_OK)
		self.assertIn('openldap: 0 unchanged, 2 changed, 0 failed, 0 skipped', output)
		self.assertIn('Converged: openldap', output)

	def test_apply_noop(self):
		exit_code, output = self.run_main(['apply', OPENLDAP_MODULE, '--noop'])
		self.assertEqual(exit_code, convergeit_main.EXIT_OK)
		self.assertIn('changed (noop)', output)

	def test_unknown_parameter(self):
		exit_code, _ = self.run_main(['apply', OPENLDAP_MODULE, '-s', 'module', 'no_such_param', 'x'])
		self.assertEqual(exit_code, convergeit_main.EXIT_FAILED)

	def test_missing_module(self):
		exit_code, _ = self.run_main(['apply', os.path.join(self.home, 'missing.py')])
		self.assertEqual(exit_code, convergeit_main.EXIT_FAILED)

	def test_list_configs(self):
		exit_code, output = self.run_main(['list_configs', '--history', '-s', 'target', 'os_family', 'RedHat'])
		self.assertEqual(exit_code, convergeit_main.EXIT_OK)
		self.assertIn('os_family:RedHat    # set in: overrides', output)

	def test_logfile(self):
		logfile = os.path.join(self.home, 'convergeit.log')
		try:
			exit_code, _ = self.run_main(['compile', OPENLDAP_MODULE, '-l', 'DEBUG', '-o', logfile])
		finally:
			convergeit_global_object.setup_logging()
		self.assertEqual(exit_code, convergeit_main.EXIT_OK)
		with open(logfile) as f:
			logged = f.read()
		self.assertIn('DEBUG: PHASE: compile convergeit.tk.openldap.openldap', logged)
		self.assertIn('DEBUG: PHASE: dependencies', logged)
		self.assertIn('DEBUG: ConvergeIt run ' + convergeit_global_object.run_id + ' as ' + convergeit_global_object.username, logged)

	def test_parse_args(self):
		args = convergeit_main.parse_args(['apply', 'module.py', '-f', 'a=b', '-f', 'c=d', '-t', 'shell', '-s', 'run', 'strict', 'no'])
		self.assertEqual(args.facts, ['a=b', 'c=d'])
		self.assertEqual(args.target, 'shell')
		self.assertIsNone(args.noop)
		self.assertEqual(args.set, [['run', 'strict', 'no']])


if __name__ == '__main__':
	unittest.main()
