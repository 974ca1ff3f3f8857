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

ZSTD_RELEASE_URL = 'https://github.com/facebook/zstd/releases/download/v{version}/{tarball}'
ZSTD_TAG_URL = 'https://github.com/facebook/zstd/archive/refs/tags/v{version}.tar.gz'


class ZstdBuilder(BuildUtils):

    def __init__(self, build_config):
        super(ZstdBuilder, self).__init__(build_config)
        self.version = build_config.zstd_version
        self.install_dir = self.merge_workspace_path('zstd-install')
        self.license_text = None

    @property
    def source_dir(self):
        return self.merge_workspace_path('zstd-%s' % self.version)

    @property
    def tarball(self):
        return self.merge_workspace_path('zstd-%s.tar.gz' % self.version)

    @property
    def checksum_file(self):
        return self.tarball + '.sha256'

    @property
    def zstd_bin(self):
        return os.path.join(self.install_dir, 'bin', self.host.executable('zstd'))

    def clean_sources(self):
        for path in (self.source_dir, self.tarball, self.checksum_file):
            self.check_remove(path)

    def fetch_release(self):
        tarball_name = os.path.basename(self.tarball)
        url = ZSTD_RELEASE_URL.format(version=self.version, tarball=tarball_name)
        checksum_url = ZSTD_RELEASE_URL.format(version=self.version, tarball=tarball_name + '.sha256')

        self.logger().info('Downloading zstd tarball...')
        fetch.download(url, self.tarball)
        self.logger().info('Downloading zstd checksum...')
        fetch.download(checksum_url, self.checksum_file)
        fetch.verify_sha256(self.tarball, self.checksum_file)
        fetch.extract_tarball(self.tarball, self.build_config.build_workspace)

    def fetch_tag(self):
        # The tag archive ships the Makefile build but no release checksum.
        fetch.download(ZSTD_TAG_URL.format(version=self.version), self.tarball)
        fetch.extract_tarball(self.tarball, self.build_config.build_workspace)

    def cmake_defines(self):
        defines = {}
        defines['CMAKE_INSTALL_PREFIX'] = self.install_dir
        defines['CMAKE_BUILD_TYPE'] = 'Release'
        defines['ZSTD_BUILD_STATIC'] = 'ON'
        defines['ZSTD_BUILD_SHARED'] = 'OFF'
        return defines

    def build_with_cmake(self):
        build_dir = os.path.join(self.source_dir, 'build_cmake')
        self.invoke_cmake_configure(os.path.join(self.source_dir, 'build', 'cmake'),
                                    build_dir,
                                    self.cmake_defines(),
                                    cwd=self.source_dir)
        config = 'Release' if self.host.is_windows else None
        self.invoke_cmake_build(build_dir, 'install', config=config, cwd=self.source_dir)

    def build_with_make(self):
        env = dict(os.environ)
        env['MACOSX_DEPLOYMENT_TARGET'] = self.build_config.macosx_deployment_target
        self.check_call(['make', '-j%d' % self.build_config.jobs, 'install', 'PREFIX=%s' % self.install_dir],
                        cwd=self.source_dir, env=env)

    def read_license(self):
        license_file = os.path.join(self.source_dir, 'LICENSE')
        if os.path.isfile(license_file):
            with open(license_file) as fp:
                self.license_text = fp.read()

    def build(self):
        self.logger().info('Building zstd v%s into %s...', self.version, self.install_dir)
        self.check_create_dir(self.build_config.build_workspace)
        self.clean_sources()

        if self.host.is_darwin:
            self.fetch_tag()
            self.read_license()
            self.build_with_make()
        else:
            self.fetch_release()
            self.read_license()
            self.build_with_cmake()

        self.clean_sources()
        return self.zstd_bin

    def cleanup(self):
        self.check_rm_tree(self.install_dir)
