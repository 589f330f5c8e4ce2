import argparse

import numpy as np

from smc_square import SMCSquare, StochasticVolatility, run_tree
from synthesize_data import simulate_sv


def run_single(y, times, args):
    sampler = SMCSquare(
        StochasticVolatility(),
        N_theta=args.n_theta,
        N_x=args.n_x,
        N_rejuvenate=args.n_rejuvenate,
        n_jobs=args.n_jobs,
        logfile=args.logfile,
        seed=args.seed,
        verbose=True,
    )
    population = sampler.run(y, times=times, start_time=0.0, progress=True)
    return sampler, population


def main():
    parser = argparse.ArgumentParser(description="SMC^2 on simulated stochastic volatility data")
    parser.add_argument('--T', type=int, default=100)
    parser.add_argument('--n-theta', type=int, default=64)
    parser.add_argument('--n-x', type=int, default=200)
    parser.add_argument('--n-rejuvenate', type=int, default=2)
    parser.add_argument('--n-jobs', type=int, default=-1)
    parser.add_argument('--workers', type=int, default=1,
                        help="number of cooperating workers in a local tree")
    parser.add_argument('--logfile', default=None)
    parser.add_argument('--seed', type=int, default=0)
    args = parser.parse_args()

    y, log_lambda, times = simulate_sv(args.T, mu=0.5, phi=0.05, seed=args.seed)

    if args.workers == 1:
        sampler, population = run_single(y, times, args)
        print('posterior mean', sampler.posterior_mean())
        print('log evidence', sampler.log_evidence)
        print('log_likelihood after term', population.log_likelihood)
        print('acceptance rates', np.round(sampler.accept_track, 3))
        return

    def run_worker(context):
        sampler = SMCSquare(
            StochasticVolatility(),
            N_theta=args.n_theta,
            N_x=args.n_x,
            N_rejuvenate=args.n_rejuvenate,
            context=context,
            seed=args.seed,
            verbose=context.rank == 0,
        )
        sampler.run(y, times=times, start_time=0.0)
        return sampler.posterior_mean()

    for rank, mean in enumerate(run_tree(run_worker, args.workers)):
        print(f'worker {rank} posterior mean', mean)


if __name__ == '__main__':
    main()
