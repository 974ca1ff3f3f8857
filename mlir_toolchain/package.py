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
import glob
import os
import subprocess
import tarfile
import zipfile

import jinja2

from mlir_toolchain.llvm_builder import TOOLCHAIN_PROJECTS
from mlir_toolchain.utils import ArchiveError, BuildUtils

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'templates')

ZSTD_COMPRESS_ARGS = ['-19', '--long=30', '--threads=0']

# Install tree entries that are not part of the distributed toolchain
UNNECESSARY_BIN_PATTERNS = ['clang*', 'llvm-bolt', 'perf2bolt']
DARWIN_UNNECESSARY_BIN_PATTERNS = ['lld*']
UNNECESSARY_DIRS = [os.path.join('lib', 'clang'), 'share']


class LlvmPackage(BuildUtils):

    def __init__(self, build_config, zstd_builder):
        super(LlvmPackage, self).__init__(build_config)
        self.zstd_builder = zstd_builder
        self.install_dir = build_config.install_prefix
        self.bin_dir = os.path.join(self.install_dir, 'bin')
        self.lib_dir = os.path.join(self.install_dir, 'lib')

    def unnecessary_bin_patterns(self):
        patterns = list(UNNECESSARY_BIN_PATTERNS)
        if self.host.is_darwin:
            patterns.extend(DARWIN_UNNECESSARY_BIN_PATTERNS)
        # clang* already covers clang.exe
        return [pattern if pattern.endswith('*') else self.host.executable(pattern) for pattern in patterns]

    def remove_unnecessary_bin(self):
        if not os.path.isdir(self.bin_dir):
            return
        for pattern in self.unnecessary_bin_patterns():
            for binary in glob.glob(os.path.join(self.bin_dir, pattern)):
                self.check_remove(binary)

    def remove_unnecessary_dirs(self):
        for directory in UNNECESSARY_DIRS:
            self.check_rm_tree(os.path.join(self.install_dir, directory))

    def strip_args(self):
        if self.host.is_darwin:
            return ['strip', '-S']
        return ['strip', '--strip-debug']

    def strippable_files(self):
        files = []
        if os.path.isdir(self.bin_dir):
            for bin_filename in sorted(os.listdir(self.bin_dir)):
                binary = os.path.join(self.bin_dir, bin_filename)
                if os.path.isfile(binary) and not os.path.islink(binary) and os.access(binary, os.X_OK):
                    files.append(binary)

        for dirpath, _, filenames in os.walk(self.lib_dir):
            for lib_file in sorted(filenames):
                static_library = os.path.join(dirpath, lib_file)
                if lib_file.endswith('.a') and not os.path.islink(static_library):
                    files.append(static_library)
        return files

    def strip_binaries(self):
        if self.build_config.debug:
            return
        if self.host.is_windows or not self.find_program('strip'):
            self.logger().info('strip is not available, binaries are left as is')
            return

        strip_args = self.strip_args()
        for binary in self.strippable_files():
            try:
                self.check_call(strip_args + [binary])
            except (subprocess.CalledProcessError, OSError) as error:
                self.logger().warning('Could not strip %s: %s', binary, error)

    def archive_name(self):
        suffix = '_debug' if self.build_config.debug else ''
        return 'llvm-mlir_%s_%s_%s_%s%s.tar.zst' % (self.build_config.llvm_project_ref.replace('/', '-'),
                                                    self.host.system, self.host.arch, self.host.llvm_target, suffix)

    def zstd_archive_name(self):
        ext = '.zip' if self.host.is_windows else '.tar.gz'
        return 'zstd-%s_%s_%s_%s%s' % (self.zstd_builder.version, self.host.system, self.host.arch,
                                       self.host.llvm_target, ext)

    def readme_context(self):
        return {
            'llvm_project_ref': self.build_config.llvm_project_ref,
            'system': self.host.system,
            'arch': self.host.arch,
            'llvm_target': self.host.llvm_target,
            'build_type': self.build_config.build_type,
            'zstd_version': self.zstd_builder.version,
            'projects': TOOLCHAIN_PROJECTS.split(';'),
            'archive_name': self.archive_name(),
            'date': datetime.datetime.now(datetime.timezone.utc).strftime('%Y-%m-%d'),
        }

    def write_readme(self):
        env = jinja2.Environment(loader=jinja2.FileSystemLoader(TEMPLATES_DIR), keep_trailing_newline=True)
        template = env.get_template('toolchain_readme.md.j2')
        document = template.render(self.readme_context())
        self.check_create_dir(self.install_dir)
        readme_path = os.path.join(self.install_dir, 'README.md')
        with open(readme_path, 'w', encoding='utf-8') as readme:
            readme.write(document)
        return readme_path

    def workspace_arcnames(self, archive_path):
        """Archive member names of build outputs that live inside the install tree."""
        paths = [archive_path, self.zstd_builder.install_dir, self.zstd_builder.source_dir,
                 self.zstd_builder.tarball, self.zstd_builder.checksum_file]
        workspace = os.path.abspath(self.build_config.build_workspace)
        if workspace != os.path.abspath(self.install_dir):
            paths.append(workspace)

        arcnames = set()
        for path in paths:
            relpath = os.path.relpath(os.path.abspath(path), self.install_dir)
            if relpath == os.curdir or relpath.split(os.sep)[0] == os.pardir:
                continue
            arcnames.add('./' + relpath.replace(os.sep, '/'))
        return arcnames

    def package_up_resulting(self, archive_path):
        """Stream the install tree as a tar through zstd into archive_path."""
        zstd_bin = self.zstd_builder.zstd_bin
        cmd = [zstd_bin] + ZSTD_COMPRESS_ARGS + ['-f', '-q', '-o', archive_path]
        self.logger().info('Packaging %s', archive_path)
        self.logger().info('check_call:%s tar -c . | %s',
                           datetime.datetime.now().strftime("%H:%M:%S"), subprocess.list2cmdline(cmd))

        try:
            proc = subprocess.Popen(cmd, stdin=subprocess.PIPE)
        except OSError as error:
            raise ArchiveError('Failed to start %s: %s' % (zstd_bin, error)) from error

        own_output = self.workspace_arcnames(archive_path)

        def skip_own_output(tarinfo):
            return None if tarinfo.name in own_output else tarinfo

        try:
            with tarfile.open(fileobj=proc.stdin, mode='w|') as tar:
                tar.add(self.install_dir, arcname='.', filter=skip_own_output)
        except (tarfile.TarError, OSError) as error:
            proc.kill()
            proc.wait()
            raise ArchiveError('Failed to create archive %s: %s' % (archive_path, error)) from error
        finally:
            if not proc.stdin.closed:
                proc.stdin.close()

        if proc.wait() != 0:
            raise ArchiveError('Failed to create archive %s: zstd exited with %d' % (archive_path, proc.returncode))
        return archive_path

    def package_zstd(self, output_dir):
        if self.host.is_darwin:
            return None

        zstd_bin = self.zstd_builder.zstd_bin
        zstd_archive_path = os.path.join(output_dir, self.zstd_archive_name())
        self.logger().info('Packaging zstd into %s...', zstd_archive_path)
        try:
            if self.host.is_windows:
                with zipfile.ZipFile(zstd_archive_path, 'w', zipfile.ZIP_DEFLATED) as archive:
                    archive.write(zstd_bin, arcname=os.path.basename(zstd_bin))
            else:
                with tarfile.open(zstd_archive_path, 'w:gz') as archive:
                    archive.add(zstd_bin, arcname=os.path.basename(zstd_bin))
        except (tarfile.TarError, OSError) as error:
            raise ArchiveError('Failed to create zstd archive %s: %s' % (zstd_archive_path, error)) from error
        return zstd_archive_path

    # Packing Operation.

    def package_operation(self):
        self.logger().info('Packaging %s', self.install_dir)
        if not os.path.isdir(self.install_dir):
            raise ArchiveError('Install directory %s does not exist' % self.install_dir)

        self.remove_unnecessary_bin()
        self.remove_unnecessary_dirs()
        self.strip_binaries()
        self.write_readme()

        output_dir = self.build_config.output_dir
        self.check_create_dir(output_dir)

        # Written outside of the install tree so that tar does not read its own output
        temp_archive_path = self.merge_workspace_path(self.archive_name())
        self.package_up_resulting(temp_archive_path)

        zstd_archive_path = self.package_zstd(output_dir)

        archive_path = os.path.join(output_dir, self.archive_name())
        try:
            self.check_move(temp_archive_path, archive_path)
        except OSError as error:
            raise ArchiveError('Failed to move archive to %s: %s' % (archive_path, error)) from error

        return archive_path, zstd_archive_path
