"""Evolution engine — generational search over neural patterns.

Provides:
- FitnessEvaluator: 8-metric scoring with caching
- GeneticOperators: crossover and mutation over genotypes
- PopulationManager: seeding, selection, reproduction, survivors
- NeuralEvolutionEngine: the run orchestrator
"""
