import os
import shutil

import dask.array as da
import numpy as np
import zarr


def _paths(population):
    paths = [s.path for s in population.s1s]
    if any(p is None for p in paths):
        return None
    return np.stack(paths)


class PopulationOutput:
    """Keeps snapshots of the population in memory, one record per write."""

    def __init__(self):
        self.records = []

    def clear(self):
        self.records = []

    def write(self, population):
        self.records.append({
            'theta': population.thetas(),
            'log_weights': population.log_weights.copy(),
            'ancestors': population.ancestors.copy(),
            'log_likelihood': population.log_likelihood,
            'log_increments': population.log_increments.copy(),
            'ess': population.ess,
            'paths': _paths(population),
            'means': [dict(out.means) for out in population.out1s],
        })

    def __len__(self):
        return len(self.records)

    @property
    def last(self):
        return self.records[-1] if self.records else None


class ZarrOutput:
    """
    Writes population snapshots to a zarr group.

    Arrays are created on the first write with one chunk per record, and
    filled with dask so large populations are copied chunk by chunk.

    Args:
        zarr_path (str): directory of the zarr store.
        max_records (int): number of snapshots the store can hold.
        overwrite (bool): remove an existing store at zarr_path first.
    """

    def __init__(self, zarr_path, max_records=1, overwrite=True):
        self.zarr_path = zarr_path
        self.max_records = max_records
        if overwrite and os.path.exists(self.zarr_path):
            shutil.rmtree(self.zarr_path)
        self.root = zarr.open_group(self.zarr_path, mode='a')
        self.n_written = 0
        self._arrays = None

    def clear(self):
        self.n_written = 0

    def _setup(self, population):
        C = population.size
        dim = population.thetas().shape[1]
        n = self.max_records
        n_slots = population.log_increments.shape[0]
        self._arrays = {
            'theta': self.root.zeros(name='theta', shape=(n, C, dim), dtype='float64',
                                     chunks=(1, C, dim)),
            'log_weights': self.root.zeros(name='log_weights', shape=(n, C), dtype='float64',
                                           chunks=(1, C)),
            'ancestors': self.root.zeros(name='ancestors', shape=(n, C), dtype='int64',
                                         chunks=(1, C)),
            'log_increments': self.root.zeros(name='log_increments', shape=(n, n_slots),
                                              dtype='float64', chunks=(1, n_slots)),
            'log_likelihood': self.root.zeros(name='log_likelihood', shape=(n,), dtype='float64',
                                              chunks=(1,)),
        }
        paths = _paths(population)
        if paths is not None:
            self._arrays['paths'] = self.root.zeros(
                name='paths', shape=(n,) + paths.shape, dtype='float64', chunks=(1,) + paths.shape
            )

    def write(self, population):
        if self._arrays is None:
            self._setup(population)
        if self.n_written >= self.max_records:
            raise ValueError(f"zarr store {self.zarr_path} already holds {self.max_records} records")

        i = self.n_written
        data = {
            'theta': population.thetas(),
            'log_weights': population.log_weights,
            'ancestors': population.ancestors.astype('int64'),
            'log_increments': population.log_increments,
        }
        paths = _paths(population)
        if paths is not None and 'paths' in self._arrays:
            data['paths'] = paths

        sources = []
        targets = []
        regions = []
        for name, values in data.items():
            values = np.asarray(values)[np.newaxis]
            sources.append(da.from_array(values, chunks=values.shape))
            targets.append(self._arrays[name])
            regions.append((slice(i, i + 1),) + tuple(slice(0, d) for d in values.shape[1:]))
        da.store(sources, targets, regions=regions, compute=True, scheduler='threads')

        self._arrays['log_likelihood'][i] = population.log_likelihood
        self.n_written += 1

    def read(self, name):
        return np.asarray(self.root[name][:self.n_written])
