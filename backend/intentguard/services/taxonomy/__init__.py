# Taxonomy Services
#
# Everything downstream is indexed by the category order owned here.
# - TaxonomyManager: register / rebalance / snapshot / resolve
# - validate_categories: ShortLex + depth/parent invariants (fatal)
# - validate_orthogonality: pairwise correlation check (advisory)
# - TaxonomyRepository: persists manager state between restarts
