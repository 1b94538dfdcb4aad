from numpy import array, exp, savetxt
from numpy.random import default_rng

from mcpost.chain import chain_filenames, load_chains, ParallelChainLoader
from mcpost.pdf import ONE_SIGMA

"""
Code to demonstrate estimating posterior distributions from chain files.
"""

# first we need some chains to work with, so run a basic Metropolis sampler
# on a correlated 2D gaussian posterior. The chain files store one line per
# distinct position: the weight (number of steps spent there), the -2 ln L
# value, and then the parameter values.
inv_cov = array([[1.0, -0.8], [-0.8, 1.0]]) / 0.36
centre = array([1.0, 3.0])


def chi_squared(theta):
    dx = theta - centre
    return dx @ inv_cov @ dx


# the loader starts new processes, so the script body must be guarded
if __name__ == "__main__":
    filenames = chain_filenames("demo_chain", 4)
    for seed, filename in enumerate(filenames):
        rng = default_rng(seed)
        theta, like, weight = centre.copy(), 0.0, 1
        rows = []
        for _ in range(40000):
            proposal = theta + 0.8 * rng.normal(size=2)
            new_like = chi_squared(proposal)
            if rng.random() < exp(-0.5 * (new_like - like)):
                rows.append([weight, like, *theta])
                theta, like, weight = proposal, new_like, 1
            else:
                weight += 1
        rows.append([weight, like, *theta])
        savetxt(filename, array(rows))

    # load_chains reads each file, removes the burn-in and thins the chain,
    # then merges the files into a single WeightedChain sorted by weight
    chain = load_chains(filenames, burn=500, thin=2)

    # the files can also be read by separate processes, which is faster for
    # large chains
    chain = ParallelChainLoader(filenames, burn=500, thin=2).load()

    # get_marginal returns a Posterior1D object which holds the smoothed
    # marginal distribution of the chosen parameter
    marginal = chain.get_marginal(0)
    print(f"median = {marginal.median():.3f}")
    print(f"68% interval = {marginal.credible_interval(ONE_SIGMA)}")
    print(f"95% upper limit = {marginal.upper_limit(0.95):.3f}")

    # the estimate can be written to a file for plotting elsewhere
    marginal.write_to_file("demo_marginal.txt", 500)

    # get_joint_marginal returns a Posterior2D object. Its level() method gives
    # the density value at the boundary of the highest-density region holding
    # a chosen fraction of the probability.
    joint = chain.get_joint_marginal(0, 1)
    print(f"one-sigma contour level = {joint.one_sigma_level():.4f}")
    joint.write_to_file("demo_joint.txt", 200)

    # credible_region returns the highest-weight samples which together hold
    # a chosen fraction of the total weight
    region = chain.credible_region(0.95)
    print(f"{len(region)} of {len(chain)} samples lie in the 95% region")
