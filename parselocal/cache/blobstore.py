"""
Blob stores keep the bytes of the local cache: one blob per (namespace, key),
along with the time it was last written.

The namespace is a class name, the key is an objectId (or the index).
Freshness is decided by the caller, from the modification time.
"""

import os
import threading
import time
from typing import Tuple

import sqlalchemy as sa

from ..exc import NotFound


class BlobStore:
    """ Storage interface for the local cache """

    def read(self, namespace: str, key: str) -> Tuple[bytes, float]:
        """ Read a blob

            :return: (data, mtime) ; mtime is a unix timestamp
            :raises NotFound: no such blob
        """
        raise NotImplementedError()

    def write(self, namespace: str, key: str, data: bytes):
        """ Write a blob, replacing the previous one. The mtime is set to now. """
        raise NotImplementedError()

    def remove(self, namespace: str, key: str):
        """ Remove a blob. Missing blobs are ignored. """
        raise NotImplementedError()


class MemoryBlobStore(BlobStore):
    """ Blobs in a dict. Nothing survives the process.

        :param clock: The source of modification times
    """

    def __init__(self, clock=time.time):
        self.clock = clock
        self._blobs = {}
        self._lock = threading.Lock()

    def read(self, namespace, key):
        with self._lock:
            try:
                return self._blobs[namespace, key]
            except KeyError:
                raise NotFound(namespace, key)

    def write(self, namespace, key, data):
        with self._lock:
            self._blobs[namespace, key] = (bytes(data), self.clock())

    def remove(self, namespace, key):
        with self._lock:
            self._blobs.pop((namespace, key), None)


class FileBlobStore(BlobStore):
    """ Blobs in files: `<root>/<namespace>/<key>`

        The modification time comes from the filesystem.
        Writes go through a temporary file, so a reader never sees a half-written blob.
    """

    def __init__(self, root: str):
        self.root = root

    def _path(self, namespace, key):
        return os.path.join(self.root, namespace, key)

    def read(self, namespace, key):
        path = self._path(namespace, key)
        try:
            with open(path, 'rb') as f:
                data = f.read()
            return data, os.path.getmtime(path)
        except FileNotFoundError:
            raise NotFound(namespace, key)

    def write(self, namespace, key, data):
        path = self._path(namespace, key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        tmp_path = '{}.{}.tmp'.format(path, threading.get_ident())
        with open(tmp_path, 'wb') as f:
            f.write(data)
        os.replace(tmp_path, path)

    def remove(self, namespace, key):
        try:
            os.remove(self._path(namespace, key))
        except FileNotFoundError:
            pass


class SqlBlobStore(BlobStore):
    """ Blobs in an SQL table, through SQLAlchemy Core

        Table: parselocal_blobs(namespace, key, data, modified_at)

        :param engine: An SQLAlchemy Engine, or a database URL
        :param clock: The source of modification times
    """

    def __init__(self, engine, clock=time.time, table_name='parselocal_blobs'):
        if isinstance(engine, str):
            engine = sa.create_engine(engine)
        self.engine = engine
        self.clock = clock

        self.metadata = sa.MetaData()
        self.table = sa.Table(
            table_name, self.metadata,
            sa.Column('namespace', sa.String(255), primary_key=True),
            sa.Column('key', sa.String(255), primary_key=True),
            sa.Column('data', sa.LargeBinary, nullable=False),
            sa.Column('modified_at', sa.Float, nullable=False),
        )
        self.metadata.create_all(self.engine)

    def _where(self, namespace, key):
        return sa.and_(self.table.c.namespace == namespace, self.table.c.key == key)

    def read(self, namespace, key):
        stmt = sa.select(self.table.c.data, self.table.c.modified_at).where(self._where(namespace, key))
        with self.engine.connect() as conn:
            row = conn.execute(stmt).first()
        if row is None:
            raise NotFound(namespace, key)
        return bytes(row[0]), row[1]

    def write(self, namespace, key, data):
        # Replace in one transaction
        with self.engine.begin() as conn:
            conn.execute(self.table.delete().where(self._where(namespace, key)))
            conn.execute(self.table.insert().values(
                namespace=namespace,
                key=key,
                data=bytes(data),
                modified_at=self.clock(),
            ))

    def remove(self, namespace, key):
        with self.engine.begin() as conn:
            conn.execute(self.table.delete().where(self._where(namespace, key)))


def blob_store_from_settings(cache_root: str = None, cache_url: str = None) -> BlobStore:
    """ Pick a blob store for the given settings

        * `cache_root`: FileBlobStore
        * `cache_url`: SqlBlobStore
        * neither: MemoryBlobStore
    """
    if cache_root and cache_url:
        raise ValueError('Provide either `cache_root`, or `cache_url`, but not both')
    if cache_root:
        return FileBlobStore(cache_root)
    if cache_url:
        return SqlBlobStore(cache_url)
    return MemoryBlobStore()
