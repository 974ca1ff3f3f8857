# Copyright (C) 2024 Huawei Device Co., Ltd.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import datetime
import logging
import os
import shutil
import stat
import subprocess


class ToolchainError(RuntimeError):
    """Base class for failures that abort the toolchain build."""


class UnsupportedHostError(ToolchainError):
    pass


class DownloadError(ToolchainError):
    pass


class ChecksumError(ToolchainError):
    pass


class ArchiveError(ToolchainError):
    pass


class BuildUtils(object):

    def __init__(self, build_config):
        self.build_config = build_config
        self.host = build_config.host

    @staticmethod
    def logger():
        """Returns the module level logger."""
        return logging.getLogger(__name__)

    def check_call(self, cmd, *args, **kwargs):
        """subprocess.check_call with logging."""
        self.logger().info('check_call:%s %s',
                           datetime.datetime.now().strftime("%H:%M:%S"), subprocess.list2cmdline(cmd))

        subprocess.check_call(cmd, *args, **kwargs)

    def check_create_dir(self, path):
        if not os.path.exists(path):
            self.logger().info('makedirs %s', path)
            os.makedirs(path)

    def check_rm_tree(self, tree_dir):
        """Removes directory tree."""
        def chmod_and_retry(func, path, _):
            if not os.access(path, os.W_OK):
                os.chmod(path, stat.S_IWUSR)
                return func(path)
            raise IOError("rmtree on %s failed" % path)

        if os.path.exists(tree_dir):
            self.logger().info('shutil rmtree %s', tree_dir)
            shutil.rmtree(tree_dir, onexc=chmod_and_retry)

    def check_remove(self, path):
        if os.path.isdir(path) and not os.path.islink(path):
            self.check_rm_tree(path)
        elif os.path.lexists(path):
            self.logger().info('remove %s', path)
            os.remove(path)

    def check_move(self, src, dst):
        self.logger().info('move %s %s', src, dst)
        shutil.move(src, dst)

    def merge_workspace_path(self, *args):
        return os.path.abspath(os.path.join(self.build_config.build_workspace, *args))

    @staticmethod
    def find_program(name):
        return shutil.which(name)

    @staticmethod
    def path_prepended_env(env, *paths):
        env = dict(env)
        env['PATH'] = os.pathsep.join(list(paths) + [env.get('PATH', '')])
        return env

    def invoke_cmake_configure(self, source_dir, build_dir, defines, env=None, cwd=None):
        flags = ['-S', source_dir, '-B', build_dir]
        for key in defines:
            flags += [''.join(['-D', key, '=', defines[key]])]

        self.check_call(['cmake'] + flags, cwd=cwd, env=env)

    def invoke_cmake_build(self, build_dir, target, config=None, env=None, cwd=None):
        cmd = ['cmake', '--build', build_dir, '--target', target]
        if config:
            cmd += ['--config', config]
        cmd += ['-j%d' % self.build_config.jobs]

        self.check_call(cmd, cwd=cwd, env=env)
