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

"""
Source archive retrieval: download with retries, sha256 verification and
tarball extraction with GNU tar style --strip-components/--exclude.
"""

import hashlib
import logging
import os
import shutil
import tarfile
import time
import urllib.error
import urllib.request
from typing import Iterable, List, Optional, Sequence

from mlir_toolchain.utils import ArchiveError, ChecksumError, DownloadError

LLVM_PROJECT_ARCHIVE_URL = 'https://github.com/llvm/llvm-project/archive/{ref}.tar.gz'

DOWNLOAD_RETRIES = 5
DOWNLOAD_RETRY_DELAY = 5
DOWNLOAD_CHUNK_SIZE = 1024 * 1024


def logger():
    return logging.getLogger(__name__)


def llvm_project_url(ref: str) -> str:
    return LLVM_PROJECT_ARCHIVE_URL.format(ref=ref)


def download(url: str, dest: str, retries: int = DOWNLOAD_RETRIES, retry_delay: float = DOWNLOAD_RETRY_DELAY) -> str:
    """
    Fetch url into dest, retrying failed attempts.

    Args:
        url(str): http(s) url to fetch, redirects are followed
        dest(str): output file, replaced if it exists
        retries(int): extra attempts after the first failure
        retry_delay(float): seconds to wait between attempts
    Return:
        dest
    """
    attempts = retries + 1
    for attempt in range(1, attempts + 1):
        logger().info('Retrieving URL: "%s" to "%s" (attempt %d/%d)', url, dest, attempt, attempts)
        try:
            with urllib.request.urlopen(url) as response, open(dest, 'wb') as out:
                shutil.copyfileobj(response, out, DOWNLOAD_CHUNK_SIZE)
            return dest
        except (urllib.error.URLError, OSError) as error:
            if os.path.exists(dest):
                os.remove(dest)
            if attempt == attempts:
                raise DownloadError('Failed to download %s: %s' % (url, error)) from error
            logger().warning('Download of %s failed (%s), retrying in %s seconds', url, error, retry_delay)
            time.sleep(retry_delay)


def sha256_of(path: str) -> str:
    digest = hashlib.sha256()
    with open(path, 'rb') as fp:
        for chunk in iter(lambda: fp.read(DOWNLOAD_CHUNK_SIZE), b''):
            digest.update(chunk)
    return digest.hexdigest()


def parse_checksum_file(checksum_file: str, name: Optional[str] = None) -> str:
    """Reads the expected digest from a sha256sum formatted file."""
    with open(checksum_file, 'r') as fp:
        lines = [line.strip() for line in fp if line.strip()]

    for line in lines:
        fields = line.split(None, 1)
        if len(fields) == 1:
            if len(lines) == 1:
                return fields[0].lower()
            continue
        digest, entry = fields
        entry = entry.lstrip('*')
        if name is None or os.path.basename(entry) == name:
            return digest.lower()

    raise ChecksumError('No checksum for %s in %s' % (name, checksum_file))


def verify_sha256(path: str, checksum_file: str) -> None:
    expected = parse_checksum_file(checksum_file, os.path.basename(path))
    actual = sha256_of(path)
    if actual != expected:
        raise ChecksumError('Checksum verification failed for %s: expected %s, got %s' % (path, expected, actual))
    logger().info('Checksum verified for %s', path)


def _components(name: str) -> List[str]:
    return [part for part in name.replace('\\', '/').split('/') if part not in ('', '.')]


def is_excluded(name: str, excludes: Iterable[str]) -> bool:
    """
    Unanchored GNU tar --exclude matching: a pattern excludes any member that
    contains its path components as a contiguous run.
    """
    parts = _components(name)
    for pattern in excludes:
        pattern_parts = _components(pattern)
        size = len(pattern_parts)
        if not size:
            continue
        for start in range(len(parts) - size + 1):
            if parts[start:start + size] == pattern_parts:
                return True
    return False


def _stripped_members(tar: tarfile.TarFile, strip_components: int, excludes: Sequence[str]):
    for member in tar:
        if is_excluded(member.name, excludes):
            continue
        parts = _components(member.name)
        if len(parts) <= strip_components:
            continue
        if '..' in parts or member.name.startswith(('/', '\\')):
            raise ArchiveError('Refusing to extract %s outside of the destination' % member.name)
        member.name = '/'.join(parts[strip_components:])
        if member.islnk():
            link_parts = _components(member.linkname)
            member.linkname = '/'.join(link_parts[strip_components:])
        yield member


def extract_tarball(archive: str, dest: str, strip_components: int = 0, excludes: Sequence[str] = ()) -> str:
    """
    Extract archive into dest.

    Args:
        archive(str): compressed tarball, compression is auto detected
        dest(str): output directory, created if needed
        strip_components(int): leading path components dropped from each member
        excludes(list): GNU tar style exclude patterns matched before stripping
    Return:
        dest
    """
    logger().info('Extracting %s to %s', archive, dest)
    os.makedirs(dest, exist_ok=True)
    try:
        with tarfile.open(archive, 'r:*') as tar:
            tar.extractall(dest, members=_stripped_members(tar, strip_components, excludes), filter='tar')
    except (tarfile.TarError, OSError) as error:
        raise ArchiveError('Failed to extract %s: %s' % (archive, error)) from error
    return dest
