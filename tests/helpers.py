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

import os
import shutil
import stat
import tempfile
import unittest

from mlir_toolchain.build import BuildConfig
from mlir_toolchain.host import Host

LINUX_X86 = Host('linux', 'x86_64', 'X86')
DARWIN_ARM64 = Host('macos', 'arm64', 'AArch64')
WINDOWS_X86 = Host('windows', 'x86_64', 'X86')

LLVM_REF = 'llvmorg-21.1.8'


def make_config(workspace, host=LINUX_X86, extra_args=(), environ=None):
    argv = ['-r', LLVM_REF,
            '-p', os.path.join(workspace, 'install'),
            '-w', workspace,
            '-j', '4']
    argv.extend(extra_args)
    return BuildConfig(argv, environ=environ or {}, host=host)


def touch(path, content='', executable=False):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'w') as fp:
        fp.write(content)
    if executable:
        os.chmod(path, os.stat(path).st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


class WorkspaceTestCase(unittest.TestCase):

    def setUp(self):
        self.workspace = os.path.realpath(tempfile.mkdtemp())

    def tearDown(self):
        if os.path.exists(self.workspace):
            shutil.rmtree(self.workspace)
