#!/usr/bin/env python3
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

# Build and package the LLVM/MLIR toolchain.
#
# Usage: mlir-toolchain -r <llvm-project ref> -p <installation directory> [-d]
#
# Outputs:
#   - Installs into the installation directory
#   - llvm-mlir_<ref>_<platform>_<arch>_<target>[_debug].tar.zst
#   - zstd-<version>_<platform>_<arch>_<target>.tar.gz (.zip on Windows, none on macOS)

import argparse
import logging
import os
import subprocess
import sys

from mlir_toolchain.host import detect_host
from mlir_toolchain.llvm_builder import LlvmCore
from mlir_toolchain.package import LlvmPackage
from mlir_toolchain.utils import ToolchainError
from mlir_toolchain.zstd_builder import ZstdBuilder

ZSTD_VERSION = '1.5.7'
MACOSX_DEPLOYMENT_TARGET = '11.0'


class BuildConfig():
    # Obtains script parameters, with the container environment as fallback.

    def __init__(self, argv=None, environ=None, host=None):
        environ = os.environ if environ is None else environ
        args = self.parse_args(argv, environ)

        logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                            format='%(asctime)s: %(levelname)s: %(name)s: %(message)s')

        self.host = host if host is not None else detect_host()
        self.llvm_project_ref = args.llvm_project_ref
        self.install_prefix = os.path.abspath(args.install_prefix)
        self.build_workspace = os.path.abspath(args.build_workspace)
        self.output_dir = os.path.abspath(args.output_dir or args.install_prefix)
        self.debug = args.debug
        self.build_type = 'Debug' if args.debug else 'Release'
        self.jobs = args.jobs
        self.zstd_version = args.zstd_version
        self.do_build = not args.skip_build
        self.do_package = not args.skip_package
        self.macosx_deployment_target = environ.get('MACOSX_DEPLOYMENT_TARGET', MACOSX_DEPLOYMENT_TARGET)

    @staticmethod
    def parse_add_argument(parser, environ):

        parser.add_argument(
            '-r', '--llvm-project-ref',
            default=environ.get('LLVM_PROJECT_REF'),
            help='llvm-project Git ref or commit SHA (e.g. llvmorg-21.1.8). Defaults to $LLVM_PROJECT_REF.')

        parser.add_argument(
            '-p', '--install-prefix',
            default=environ.get('INSTALL_PREFIX'),
            help='Installation directory. Defaults to $INSTALL_PREFIX.')

        parser.add_argument(
            '-d', '--debug',
            action='store_true',
            default=False,
            help='Build LLVM and MLIR in Debug mode. Binaries are not stripped.')

        parser.add_argument(
            '-w', '--build-workspace',
            default=environ.get('BUILD_WORKSPACE', os.getcwd()),
            help='Directory for sources and build trees. Defaults to $BUILD_WORKSPACE or the current directory.')

        parser.add_argument(
            '-j', '--jobs',
            type=int,
            default=os.cpu_count() or 1,
            help='The number of build jobs to run in parallel. Defaults to cpu_count.')

        parser.add_argument(
            '--zstd-version',
            default=ZSTD_VERSION,
            help='zstd release used to compress the archive.')

        parser.add_argument(
            '--output-dir',
            default=None,
            help='Where the archives are written. Defaults to the installation directory.')

        parser.add_argument(
            '-v', '--verbose',
            action='store_true',
            default=False,
            help='Enable debug logging.')

    def parse_args(self, argv=None, environ=None):
        environ = os.environ if environ is None else environ

        parser = argparse.ArgumentParser(description='Build and package the LLVM/MLIR toolchain.')

        # Options to skip build or packaging, can't skip two
        build_package_group = parser.add_mutually_exclusive_group()
        build_package_group.add_argument(
            '--skip-build',
            '-sb',
            action='store_true',
            default=False,
            help='Omit the LLVM build, package an existing installation directory.')

        build_package_group.add_argument(
            '--skip-package',
            '-sp',
            action='store_true',
            default=False,
            help='Omit the packaging, only build and install.')

        self.parse_add_argument(parser, environ)

        args = parser.parse_args(argv)
        if not args.llvm_project_ref:
            parser.error('llvm-project ref (-r) is required')
        if not args.install_prefix:
            parser.error('Installation directory (-p) is required')
        if args.jobs < 1:
            parser.error('--jobs must be at least 1')
        return args


def logger():
    return logging.getLogger(__name__)


def main(argv=None):
    try:
        build_config = BuildConfig(argv)
    except ToolchainError as error:
        logger().error('Error: %s', error)
        return 1

    zstd_builder = ZstdBuilder(build_config)
    llvm_core = LlvmCore(build_config, zstd_builder)
    llvm_package = LlvmPackage(build_config, zstd_builder)

    try:
        zstd_builder.build()

        if build_config.do_build:
            llvm_core.llvm_compile()

        if build_config.do_package:
            archive_path, zstd_archive_path = llvm_package.package_operation()
            logger().info('Created %s', archive_path)
            if zstd_archive_path:
                logger().info('Created %s', zstd_archive_path)

        zstd_builder.cleanup()
    except (ToolchainError, subprocess.CalledProcessError, OSError) as error:
        logger().error('Error: %s', error)
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
