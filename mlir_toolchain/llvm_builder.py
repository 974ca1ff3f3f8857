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

from mlir_toolchain import fetch
from mlir_toolchain.utils import BuildUtils

# Subprojects and test trees never needed for an mlir;lld build.
LINUX_SOURCE_EXCLUDES = (
    'clang',
    'lldb',
    'polly',
    'flang',
    'openmp',
    'libclc',
    'libc',
    'llvm/test',
    'mlir/test',
    'llvm/unittests',
    'mlir/unittests',
)

BOOTSTRAP_PROJECTS = 'lld'
TOOLCHAIN_PROJECTS = 'mlir;lld'

# Projects whose LICENSE.TXT goes into NOTICE
LICENSE_PROJECTS = ('llvm', 'mlir', 'lld')


class LlvmCore(BuildUtils):

    def __init__(self, build_config, zstd_builder=None):
        super(LlvmCore, self).__init__(build_config)
        self.zstd_builder = zstd_builder
        self.repo_dir = self.merge_workspace_path('llvm-project')
        self.build_dir = os.path.join(self.repo_dir, 'build_llvm')

    def source_excludes(self):
        if self.host.is_linux:
            return LINUX_SOURCE_EXCLUDES
        return ()

    def fetch_sources(self):
        ref = self.build_config.llvm_project_ref
        tarball = self.merge_workspace_path('llvm-project-%s.tar.gz' % ref.replace('/', '-'))

        self.check_rm_tree(self.repo_dir)
        self.check_create_dir(self.repo_dir)
        fetch.download(fetch.llvm_project_url(ref), tarball)
        try:
            fetch.extract_tarball(tarball, self.repo_dir, strip_components=1, excludes=self.source_excludes())
        finally:
            self.check_remove(tarball)

    # Base cmake options that are common across all hosts
    def base_cmake_defines(self):
        defines = {}

        defines['CMAKE_BUILD_TYPE'] = self.build_config.build_type
        defines['CMAKE_INSTALL_PREFIX'] = self.build_config.install_prefix
        defines['LLVM_BUILD_EXAMPLES'] = 'OFF'
        defines['LLVM_BUILD_TESTS'] = 'OFF'
        defines['LLVM_ENABLE_ASSERTIONS'] = 'ON'
        defines['LLVM_ENABLE_LTO'] = 'OFF'
        defines['LLVM_ENABLE_RTTI'] = 'ON'
        defines['LLVM_INCLUDE_BENCHMARKS'] = 'OFF'
        defines['LLVM_INCLUDE_EXAMPLES'] = 'OFF'
        defines['LLVM_INCLUDE_TESTS'] = 'OFF'
        defines['LLVM_INSTALL_UTILS'] = 'ON'
        defines['LLVM_TARGETS_TO_BUILD'] = self.host.llvm_target
        return defines

    def llvm_compile_linux_defines(self, llvm_defines):
        if self.host.is_linux:
            llvm_defines['CMAKE_C_COMPILER'] = 'gcc'
            llvm_defines['CMAKE_CXX_COMPILER'] = 'g++'
            llvm_defines['LLVM_ENABLE_ZSTD'] = 'OFF'
            llvm_defines['LLVM_ENABLE_LIBXML2'] = 'OFF'
            llvm_defines['LLVM_ENABLE_LIBEDIT'] = 'OFF'
            llvm_defines['LLVM_ENABLE_LIBPFM'] = 'OFF'

    def llvm_compile_darwin_defines(self, llvm_defines):
        if self.host.is_darwin:
            llvm_defines['CMAKE_C_COMPILER'] = 'clang'
            llvm_defines['CMAKE_CXX_COMPILER'] = 'clang++'
            llvm_defines['CMAKE_OSX_DEPLOYMENT_TARGET'] = self.build_config.macosx_deployment_target
            llvm_defines['LLVM_OPTIMIZED_TABLEGEN'] = 'ON'
            self.llvm_compile_zstd_defines(llvm_defines)

    def llvm_compile_windows_defines(self, llvm_defines):
        if self.host.is_windows:
            llvm_defines['CMAKE_C_COMPILER'] = 'cl'
            llvm_defines['CMAKE_CXX_COMPILER'] = 'cl'
            llvm_defines['LLVM_ENABLE_LIBXML2'] = 'OFF'
            self.llvm_compile_zstd_defines(llvm_defines)

    def llvm_compile_zstd_defines(self, llvm_defines):
        if self.zstd_builder is None:
            llvm_defines['LLVM_ENABLE_ZSTD'] = 'OFF'
            return
        llvm_defines['LLVM_ENABLE_ZSTD'] = 'ON'
        llvm_defines['CMAKE_PREFIX_PATH'] = self.zstd_builder.install_dir

    def llvm_defines(self):
        llvm_defines = self.base_cmake_defines()
        self.llvm_compile_linux_defines(llvm_defines)
        self.llvm_compile_darwin_defines(llvm_defines)
        self.llvm_compile_windows_defines(llvm_defines)
        return llvm_defines

    def bootstrap_bin_dirs(self):
        bin_dirs = [os.path.join(self.build_dir, 'bin')]
        if self.host.is_windows:
            # Multi-config generators place binaries under the configuration name
            bin_dirs.insert(0, os.path.join(self.build_dir, self.build_config.build_type, 'bin'))
        return bin_dirs

    def build_llvm(self):
        """
        Two stage build: lld is built on its own first, then the full
        mlir;lld configuration is linked with that lld.
        """
        llvm_defines = self.llvm_defines()
        llvm_path = os.path.join(self.repo_dir, 'llvm')
        env = dict(os.environ)

        bootstrap_defines = dict(llvm_defines)
        bootstrap_defines['LLVM_ENABLE_PROJECTS'] = BOOTSTRAP_PROJECTS
        self.invoke_cmake_configure(llvm_path, self.build_dir, bootstrap_defines, env=env, cwd=self.repo_dir)
        self.invoke_cmake_build(self.build_dir, 'lld', config=self.build_config.build_type,
                                env=env, cwd=self.repo_dir)

        # Use the just-built lld as the linker
        env = self.path_prepended_env(env, *self.bootstrap_bin_dirs())

        toolchain_defines = dict(llvm_defines)
        toolchain_defines['LLVM_ENABLE_PROJECTS'] = TOOLCHAIN_PROJECTS
        toolchain_defines['LLVM_ENABLE_LLD'] = 'ON'
        self.invoke_cmake_configure(llvm_path, self.build_dir, toolchain_defines, env=env, cwd=self.repo_dir)
        self.invoke_cmake_build(self.build_dir, 'install', config=self.build_config.build_type,
                                env=env, cwd=self.repo_dir)

    def notice_prebuilts_file(self):
        # Fetch the LICENSE.TXT files of the installed projects and append them
        # into a single NOTICE file for the resulting prebuilts.
        notices = []
        for project in LICENSE_PROJECTS:
            license_file = os.path.join(self.repo_dir, project, 'LICENSE.TXT')
            if os.path.isfile(license_file):
                with open(license_file) as notice_file:
                    notices.append(notice_file.read())

        if self.zstd_builder is not None and self.zstd_builder.license_text:
            notices.append(self.zstd_builder.license_text)

        if not notices:
            self.logger().warning('No license files found under %s', self.repo_dir)
            return

        self.check_create_dir(self.build_config.install_prefix)
        with open(os.path.join(self.build_config.install_prefix, 'NOTICE'), 'w') as notice_file:
            notice_file.write('\n'.join(notices))

    def llvm_compile(self):
        self.logger().info('Building MLIR %s (%s) into %s...', self.build_config.llvm_project_ref,
                           self.build_config.build_type, self.build_config.install_prefix)
        self.fetch_sources()
        self.build_llvm()
        self.notice_prebuilts_file()
        self.check_rm_tree(self.repo_dir)
