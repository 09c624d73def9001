from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class StageDefinition:
    stage_num: int
    name: str
    description: str
    focus: str


ANALYSIS_STAGES: tuple[StageDefinition, ...] = (
    StageDefinition(
        1,
        "Land use & vacancy audit",
        "Identifying underutilised and vacant parcels across the region.",
        "Vacant, underutilised and brownfield sites. Identify industrial decline, empty parcels, and low-density "
        "land with higher-use potential. Reference local plan brownfield and land use policies.",
    ),
    StageDefinition(
        2,
        "Statutory constraint mapping",
        "Mapping constraint-burdened zones and assessing proportionality to planning need.",
        "Green Belt, Flood Risk Zones, Conservation Areas, Article 4 Directions. Map constraint-burdened zones. "
        "Assess whether constraints are proportionate to planning need.",
    ),
    StageDefinition(
        3,
        "Planning performance analysis",
        "Detecting refusal clusters, stalled schemes, and systemic delivery blockages.",
        "Refusal clusters, stalled schemes, and sites with repeated delivery failure. Identify systemic "
        "application failure patterns and viability blockages.",
    ),
    StageDefinition(
        4,
        "Local plan opportunity areas",
        "Extracting regeneration allocations and strategic sites from the adopted Local Plan.",
        "Regeneration allocations, opportunity areas, and strategic housing sites from the adopted Local Plan. "
        "Cross-reference designations with actual delivery track record.",
    ),
    StageDefinition(
        5,
        "Housing delivery & pipeline",
        "Comparing approved pipeline to housing targets and identifying acute under-delivery zones.",
        "5-year housing land supply gap. Compare approved pipeline to housing targets. Identify areas of acute "
        "under-delivery.",
    ),
    StageDefinition(
        6,
        "Green & blue infrastructure deficit",
        "Measuring open space and green infrastructure provision against Fields in Trust standards.",
        "Open space and accessible green infrastructure deficit vs Fields in Trust 0.8ha/1000 standard. Identify "
        "park deserts and missing green corridors.",
    ),
    StageDefinition(
        7,
        "Transport & connectivity gaps",
        "Pinpointing low PTAL zones, missing active travel links, and disconnected communities.",
        "Low PTAL zones, missing pedestrian and cycle links, disconnected communities, poor bus frequency. "
        "Identify access inequality.",
    ),
    StageDefinition(
        8,
        "Economic & employment challenges",
        "Identifying employment land loss, vacant commercial premises, and business district decline.",
        "Employment land loss, vacant commercial premises, and business district decline. Identify areas where "
        "economic activity has contracted and where policy intervention is needed.",
    ),
    StageDefinition(
        9,
        "Opportunity zone synthesis",
        "Cross-referencing all evidence layers to rank highest-priority opportunity zones.",
        "Synthesise all prior evidence layers. Cross-reference constraint, delivery, and demand data. Rank 2-4 "
        "highest-priority opportunity zones with specific spatial boundaries.",
    ),
    StageDefinition(
        10,
        "Implementation & delivery proposals",
        "Producing concrete spatial interventions per opportunity zone with delivery mechanisms.",
        "Concrete spatial interventions per opportunity zone: specific sites, parks, connections, community "
        "infrastructure. Specify delivery mechanism and phasing.",
    ),
)
