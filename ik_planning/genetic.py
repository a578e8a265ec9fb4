"""
Generational genetic algorithm over fixed-length bitstrings.

The algorithm knows nothing about arms: a ``Genetic`` problem decodes
chromosomes into values and scores them. Higher fitness is better and must
be non-negative (selection is fitness proportional).
"""

import logging
import numpy as np
from typing import List, Optional, Protocol

logger = logging.getLogger(__name__)


class Chromosome:
    """Candidate solution: bit genome, decoded values and fitness."""

    def __init__(self, genome: np.ndarray):
        self.genome = np.asarray(genome, dtype=bool)
        self.fitness: float = 0.0
        self.decoded: List[float] = []

    def bits(self) -> str:
        return ''.join('1' if bit else '0' for bit in self.genome)

    def copy(self) -> 'Chromosome':
        clone = Chromosome(self.genome.copy())
        clone.fitness = self.fitness
        clone.decoded = list(self.decoded)
        return clone

    def __repr__(self) -> str:
        return f"Chromosome(fitness={self.fitness:.4g}, decoded={self.decoded})"


class Genetic(Protocol):
    """Problem interface driven by the genetic algorithm."""

    def decode(self, pool: List[Chromosome]) -> None:
        """Fill ``decoded`` of every chromosome."""

    def calc_fitness(self, pool: List[Chromosome]) -> None:
        """Fill ``fitness`` of every (decoded) chromosome."""


def decode_genome(genome: np.ndarray, gene_bits: int = 8) -> List[int]:
    """
    Split a genome into consecutive genes and weight their bits.

    Bit ``i`` of a gene (counted from the gene's start) contributes ``2**i``.

    Args:
        genome: Boolean array whose length is a multiple of gene_bits
        gene_bits: Bits per gene

    Returns:
        One integer per gene
    """
    genome = np.asarray(genome, dtype=bool)
    if genome.size % gene_bits:
        raise ValueError(f"Genome length {genome.size} is not a multiple of {gene_bits}")
    weights = 1 << np.arange(gene_bits)
    genes = genome.reshape(-1, gene_bits).astype(int)
    return [int(v) for v in genes @ weights]


class GeneticAlgorithm:
    """Roulette selection, single-point crossover, bit-flip mutation, elitism."""

    def __init__(self, genetic: Genetic, pool_size: int, num_genes: int,
                 gene_bits: int = 8, recombination_rate: float = 0.7,
                 mutation_rate: float = 0.01,
                 rng: Optional[np.random.Generator] = None):
        self.genetic = genetic
        self.pool_size = max(2, int(pool_size))
        self.num_genes = num_genes
        self.gene_bits = gene_bits
        self.recombination_rate = recombination_rate
        self.mutation_rate = mutation_rate
        self.rng = rng if rng is not None else np.random.default_rng()

        self.genome_length = num_genes * gene_bits
        self.pool: List[Chromosome] = [
            Chromosome(self.rng.random(self.genome_length) < 0.5)
            for _ in range(self.pool_size)
        ]
        self.best: Optional[Chromosome] = None

    def _evaluate(self, pool: List[Chromosome]):
        self.genetic.decode(pool)
        self.genetic.calc_fitness(pool)

    def do_generation(self, generations: int) -> Chromosome:
        """
        Evolve the pool for a number of generations.

        The pool survives between calls. The returned chromosome is re-scored
        against the problem's current state before it is handed out.

        Args:
            generations: Number of generations to run

        Returns:
            Best chromosome found
        """
        best: Optional[Chromosome] = None
        for generation in range(max(1, int(generations))):
            self._evaluate(self.pool)
            leader = max(self.pool, key=lambda c: c.fitness)
            if best is None or leader.fitness > best.fitness:
                best = leader.copy()
            self.pool = self._breed(best)
            if generation % 50 == 0:
                logger.debug(f"Generation {generation}: best fitness {best.fitness:.4g}")

        self._evaluate([best])
        self.best = best
        return best

    def _breed(self, elite: Chromosome) -> List[Chromosome]:
        fitness = np.array([c.fitness for c in self.pool], dtype=float)
        fitness = np.nan_to_num(np.abs(fitness), posinf=np.finfo(float).max / len(fitness))
        total = fitness.sum()
        probs = fitness / total if total > 0 else None

        new_pool = [elite.copy()]
        while len(new_pool) < self.pool_size:
            i, j = self.rng.choice(len(self.pool), size=2, p=probs)
            child_a = self.pool[i].genome.copy()
            child_b = self.pool[j].genome.copy()
            if self.rng.random() < self.recombination_rate:
                cut = int(self.rng.integers(1, self.genome_length))
                child_a[cut:], child_b[cut:] = self.pool[j].genome[cut:], self.pool[i].genome[cut:]
            for child in (child_a, child_b):
                flips = self.rng.random(self.genome_length) < self.mutation_rate
                child ^= flips
                new_pool.append(Chromosome(child))
        return new_pool[:self.pool_size]
