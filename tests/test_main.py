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
import subprocess
import unittest
from unittest import mock

from mlir_toolchain import build
from mlir_toolchain.llvm_builder import LlvmCore
from mlir_toolchain.package import LlvmPackage
from mlir_toolchain.utils import DownloadError, UnsupportedHostError
from mlir_toolchain.zstd_builder import ZstdBuilder

from tests.helpers import LINUX_X86, LLVM_REF, WorkspaceTestCase


@mock.patch.object(build, 'detect_host', return_value=LINUX_X86)
@mock.patch.object(ZstdBuilder, 'cleanup')
@mock.patch.object(LlvmPackage, 'package_operation', return_value=('llvm.tar.zst', 'zstd.tar.gz'))
@mock.patch.object(LlvmCore, 'llvm_compile')
@mock.patch.object(ZstdBuilder, 'build')
class MainTestCase(WorkspaceTestCase):

    def argv(self, *extra_args):
        return ['-r', LLVM_REF, '-p', os.path.join(self.workspace, 'install'), '-w', self.workspace] + list(extra_args)

    def test_full_run(self, zstd_build, llvm_compile, package_operation, cleanup, detect_host):
        self.assertEqual(build.main(self.argv()), 0)

        zstd_build.assert_called_once_with()
        llvm_compile.assert_called_once_with()
        package_operation.assert_called_once_with()
        cleanup.assert_called_once_with()

    def test_skip_build(self, zstd_build, llvm_compile, package_operation, cleanup, detect_host):
        self.assertEqual(build.main(self.argv('--skip-build')), 0)

        zstd_build.assert_called_once_with()
        llvm_compile.assert_not_called()
        package_operation.assert_called_once_with()

    def test_skip_package(self, zstd_build, llvm_compile, package_operation, cleanup, detect_host):
        self.assertEqual(build.main(self.argv('--skip-package')), 0)

        llvm_compile.assert_called_once_with()
        package_operation.assert_not_called()

    def test_command_failure(self, zstd_build, llvm_compile, package_operation, cleanup, detect_host):
        llvm_compile.side_effect = subprocess.CalledProcessError(1, ['cmake', '--build'])

        self.assertEqual(build.main(self.argv()), 1)

        package_operation.assert_not_called()
        cleanup.assert_not_called()

    def test_download_failure(self, zstd_build, llvm_compile, package_operation, cleanup, detect_host):
        zstd_build.side_effect = DownloadError('Failed to download zstd')

        self.assertEqual(build.main(self.argv()), 1)

        llvm_compile.assert_not_called()

    def test_missing_program(self, zstd_build, llvm_compile, package_operation, cleanup, detect_host):
        zstd_build.side_effect = FileNotFoundError(2, "No such file or directory: 'cmake'")

        self.assertEqual(build.main(self.argv()), 1)

        llvm_compile.assert_not_called()
        package_operation.assert_not_called()

    def test_unsupported_host(self, zstd_build, llvm_compile, package_operation, cleanup, detect_host):
        detect_host.side_effect = UnsupportedHostError('Unsupported architecture: riscv64.')

        self.assertEqual(build.main(self.argv()), 1)

        zstd_build.assert_not_called()


if __name__ == '__main__':
    unittest.main()
