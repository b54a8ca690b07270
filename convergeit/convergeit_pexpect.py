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

"""Represents and manages a pexpect bash session for ConvergeIt's purposes.

One session is spawned per ShellTarget. Commands are sent one at a time and
the session waits for its own unique prompt before returning the output.
"""

import logging
import re
import pexpect
from convergeit import convergeit_util
from convergeit.convergeit_global import convergeit_global_object
from convergeit.convergeit_resource import ConvergeItException


ANSI_ESCAPE_RE = re.compile(r'(\x9B|\x1B\[)[0-?]*[ -\/]*[@-~]')


class ConvergeItPexpectSession(object):

	def __init__(self,
	             pexpect_session_id,
	             command=None,
	             timeout=300,
	             encoding='utf-8',
	             env=None):
		"""spawn a child bash and set up a prompt we can reliably match.
		"""
		self.pexpect_session_id = pexpect_session_id
		self.timeout            = timeout
		self.default_expect     = None
		command = command or convergeit_global_object.bash_startup_command
		self.pexpect_child      = self._spawn_child(command, timeout=timeout, encoding=encoding, env=env)
		self.setup_prompt(pexpect_session_id)


	def _spawn_child(self, command, timeout=300, encoding='utf-8', env=None):
		"""spawn a child, and manage the delaybefore send setting
		"""
		convergeit_global_object.log('Spawning ' + self.pexpect_session_id + ': ' + command, level=logging.DEBUG)
		pexpect_child = pexpect.spawn(command,
		                              timeout=timeout,
		                              encoding=encoding,
		                              codec_errors='replace',
		                              env=env,
		                              echo=False)
		# Set the winsize wide to reduce risk of trouble from terminal line wraps.
		pexpect_child.setwinsize(convergeit_global_object.pexpect_window_size[0], convergeit_global_object.pexpect_window_size[1])
		pexpect_child.delaybeforesend = 0.05
		return pexpect_child


	def setup_prompt(self, prefix='default'):
		"""Sets the PS1 to something unique, so the end of each command's
		output can be found.
		"""
		local_prompt = prefix + ':' + convergeit_util.random_id() + '# '
		# Split the prompt with quotes so the expect cannot match the command
		# itself rather than the output.
		self.pexpect_child.sendline(""" export PS1='""" + local_prompt[:2] + "''" + local_prompt[2:] + """' && unset PROMPT_COMMAND""")
		self.default_expect = local_prompt
		self.expect(self.default_expect)
		convergeit_global_object.log('Prompt set up for ' + self.pexpect_session_id, level=logging.DEBUG)


	def expect(self, expect, timeout=None):
		try:
			return self.pexpect_child.expect_exact(expect, timeout=timeout or self.timeout)
		except (pexpect.TIMEOUT, pexpect.EOF) as e:
			raise ConvergeItException('Session ' + self.pexpect_session_id + ' lost waiting for prompt: ' + type(e).__name__)


	def send_and_get_output(self, send, timeout=None, loglevel=logging.DEBUG):
		"""Returns the output of a command run. The exit value is not checked.

		@param send:    Command to run. A leading space keeps it out of history.
		@param timeout: Seconds to wait for the prompt to return.
		"""
		convergeit_global_object.log('Sending: ' + send, level=loglevel)
		self.pexpect_child.sendline(send)
		self.expect(self.default_expect, timeout=timeout)
		before = self.pexpect_child.before
		ret = ANSI_ESCAPE_RE.sub('', before).replace('\r', '').strip()
		convergeit_global_object.log('send_and_get_output returning:\n' + ret, level=logging.DEBUG)
		return ret


	def send_and_return_status(self, send, timeout=None, loglevel=logging.DEBUG):
		"""Runs a command, returning (exit status, output).
		"""
		output = self.send_and_get_output(send, timeout=timeout, loglevel=loglevel)
		# Space before "echo" here is sic - we don't need this to show up in bash history
		res = convergeit_util.match_string(self.send_and_get_output(' echo EXIT_CODE:$?', loglevel=logging.DEBUG), '^EXIT_CODE:([0-9][0-9]?[0-9]?)$')
		if res is None:
			raise ConvergeItException('Could not determine exit value of: ' + send)
		return int(res), output


	def close(self):
		if self.pexpect_child.isalive():
			self.pexpect_child.sendline('exit')
			self.pexpect_child.close()
