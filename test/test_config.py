import os
import shutil
import tempfile
import unittest
from convergeit import convergeit_config
from convergeit.convergeit_resource import ConvergeItException


class TestLayerConfig(unittest.TestCase):

	def setUp(self):
		self.tmpdir = tempfile.mkdtemp()
		self.home_config = os.path.join(self.tmpdir, 'home_config')

	def tearDown(self):
		shutil.rmtree(self.tmpdir)

	def write_config(self, name, text, mode=0o600):
		path = os.path.join(self.tmpdir, name)
		with open(path, 'w') as f:
			f.write(text)
		os.chmod(path, mode)
		return path

	def test_defaults(self):
		cp = convergeit_config.get_configs(home_config=self.home_config)
		self.assertEqual(cp.get('target', 'type'), 'simulated')
		self.assertEqual(cp.get('run', 'strict'), 'yes')
		self.assertEqual(convergeit_config.section_dict(cp, 'module'), {})
		self.assertEqual(convergeit_config.section_dict(cp, 'nosuchsection'), {})

	def test_layers_in_order(self):
		self.write_config('home_config', '[target]\nos_family:RedHat\n')
		extra = self.write_config('extra', '[target]\nos_family:Suse\n[module]\nmanage_config:yes\n')
		cp = convergeit_config.get_configs(configs=[extra], home_config=self.home_config)
		self.assertEqual(cp.get('target', 'os_family'), 'Suse')
		self.assertEqual(cp.whereset('target', 'os_family'), extra)
		self.assertEqual(cp.get_config_set('target', 'os_family'), set(['Debian', 'RedHat', 'Suse']))
		self.assertEqual(convergeit_config.section_dict(cp, 'module'), {'manage_config': 'yes'})

	def test_overrides_win(self):
		extra = self.write_config('extra', '[run]\nnoop:no\n')
		cp = convergeit_config.get_configs(configs=[extra],
		                                   overrides=[('run', 'noop', 'yes'), ('run', 'strict', 'no'), ('facts', 'os_family', 'RedHat')],
		                                   home_config=self.home_config)
		self.assertEqual(cp.get('run', 'noop'), 'yes')
		self.assertEqual(cp.get('run', 'strict'), 'no')
		self.assertEqual(cp.get('facts', 'os_family'), 'RedHat')
		self.assertEqual(cp.whereset('run', 'noop'), 'overrides')

	def test_insecure_config(self):
		extra = self.write_config('extra', '[run]\nnoop:yes\n', mode=0o644)
		self.assertRaises(ConvergeItException, convergeit_config.get_configs, configs=[extra], home_config=self.home_config)

	def test_missing_config(self):
		self.assertRaises(ConvergeItException, convergeit_config.get_configs, configs=[os.path.join(self.tmpdir, 'missing')], home_config=self.home_config)

	def test_not_mutable(self):
		cp = convergeit_config.get_configs(home_config=self.home_config)
		self.assertRaises(NotImplementedError, cp.set, 'run', 'noop', 'yes')
		self.assertRaises(NotImplementedError, cp.remove_section, 'run')

	def test_reload(self):
		extra = self.write_config('extra', '[run]\nnoop:yes\n')
		cp = convergeit_config.get_configs(configs=[extra], home_config=self.home_config)
		self.write_config('extra', '[run]\nnoop:no\n')
		cp.reload()
		self.assertEqual(cp.get('run', 'noop'), 'no')

	def test_never_set(self):
		cp = convergeit_config.get_configs(home_config=self.home_config)
		self.assertRaises(ConvergeItException, cp.whereset, 'module', 'manage_config')

	def test_print_config(self):
		cp = convergeit_config.get_configs(overrides=[('module', 'manage_config', 'yes')], home_config=self.home_config)
		printed = convergeit_config.print_config(cp, history=True)
		self.assertIn('[module]\nmanage_config:yes    # set in: overrides', printed)
		self.assertIn('type:simulated    # set in: defaults', printed)


if __name__ == '__main__':
	unittest.main()
