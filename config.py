import logging
import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from dotenv import load_dotenv

# Load .env from project root
load_dotenv(Path(__file__).parent / ".env")


# ---------------------------------------------------------------------------
# Helper: read from Streamlit secrets if available, else os.getenv
# ---------------------------------------------------------------------------
def _get_secret(key: str, default: str = "") -> str:
    """Try st.secrets first (Streamlit Cloud), then env vars."""
    try:
        import streamlit as st
        if hasattr(st, "secrets") and key in st.secrets:
            return str(st.secrets[key])
    except (ImportError, Exception):
        pass
    return os.getenv(key, default)


# ---------------------------------------------------------------------------
# Environment-driven settings
# ---------------------------------------------------------------------------
SUPABASE_DB_URL: str = _get_secret("SUPABASE_DB_URL", "")
ANTHROPIC_API_KEY: str = _get_secret("ANTHROPIC_API_KEY", "")
MODEL: str = _get_secret("PREP_MODEL", "claude-sonnet-4-5-20250929")
ACTIVE_EXAM: str = _get_secret("PREP_ACTIVE_EXAM", "cent-s-prep")
TIMER_ENABLED: bool = _get_secret("PREP_TIMER_ENABLED", "true").lower() == "true"
LOG_LEVEL: str = _get_secret("PREP_LOG_LEVEL", "INFO")


def setup_logging(level: str = "") -> None:
    """Route all module loggers through a rich console handler."""
    from rich.logging import RichHandler

    logging.basicConfig(
        level=(level or LOG_LEVEL).upper(),
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


# ---------------------------------------------------------------------------
# Exam structure
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScoringRules:
    correct: float
    incorrect: float
    skipped: float


@dataclass(frozen=True)
class ExamSection:
    id: str
    name: str
    question_count: int
    duration_minutes: int


@dataclass(frozen=True)
class SyllabusTopic:
    id: str
    name: str
    subtopics: tuple


@dataclass(frozen=True)
class ExamConfig:
    id: str
    name: str
    duration_minutes: int
    total_questions: int
    proctored: bool
    scoring: ScoringRules
    sections: tuple          # tuple of ExamSection, in official order
    syllabus: Dict[str, tuple] = field(default_factory=dict)  # section name -> SyllabusTopic tuple
    is_live: bool = True

    def section_names(self) -> List[str]:
        return [s.name for s in self.sections]


def _topics(*entries) -> tuple:
    return tuple(SyllabusTopic(tid, name, tuple(subs)) for tid, name, subs in entries)


CENT_S = ExamConfig(
    id="cent-s-prep",
    name="CENT-S Entrance Exam",
    duration_minutes=110,
    total_questions=55,
    proctored=True,
    scoring=ScoringRules(correct=1, incorrect=-0.25, skipped=0),
    sections=(
        ExamSection("maths", "Mathematics", 15, 30),
        ExamSection("reasoning", "Reasoning on texts and data", 15, 30),
        ExamSection("biology", "Biology", 10, 20),
        ExamSection("chemistry", "Chemistry", 10, 20),
        ExamSection("physics", "Physics", 5, 10),
    ),
    syllabus={
        "Reasoning on texts and data": _topics(
            ("logic_deduction", "Logic and deductive reasoning",
             ["Connectives", "Quantifiers", "Compatibility/Equivalence", "Negation",
              "Necessary/Sufficient conditions"]),
            ("data_interpretation", "Interpretation and manipulation of data",
             ["Language conversion", "Numerical extraction", "Data sorting", "Process recognition"]),
            ("problem_solving", "Problem solving",
             ["Algebraic modelling", "Result estimation", "Ratio/Proportionality", "Mean estimation"]),
        ),
        "Mathematics": _topics(
            ("math_numbers", "Numbers", ["Factorisation", "Remainders", "Powers & Roots", "Percentage change"]),
            ("math_algebra", "Algebra",
             ["Literal expressions", "Polynomial roots", "Equations & Inequalities", "Linear systems"]),
            ("math_geometry", "Geometry",
             ["Plane & Space figures", "Similar figures", "Cartesian coordinates", "Lines & Circles"]),
            ("math_functions", "Functions",
             ["Composition & Inverses", "Transformations", "Elementary functions",
              "Power/Polynomial functions"]),
            ("math_explog", "Exponential and logarithms",
             ["Logarithm properties", "Exponential equations", "Logarithmic inequalities"]),
            ("math_prob", "Combinatorics and probability",
             ["Combinations", "Permutations", "Event probability", "Disjoint/Independent events"]),
            ("math_stats", "Basic Statistics",
             ["Representation", "Frequencies", "Central tendency (Mean, Median, Mode)"]),
        ),
        "Biology": _topics(
            ("bio_molecules", "Biological molecules",
             ["Properties of water", "Carbohydrates & Lipids", "Proteins & Nucleic acids"]),
            ("bio_cell", "Cell biology",
             ["Organelles", "Endomembrane system", "Plant vs Animal cell", "Cell wall & Chloroplasts"]),
            ("bio_inheritance", "Cell cycle, division, inheritance",
             ["Genome structure", "Replication/Transcription/Translation", "Mitosis & Meiosis",
              "Mendelian inheritance"]),
            ("bio_plant_ecology", "Plant biology and ecology",
             ["Plant anatomy", "Energy flows", "Food chains", "Biotic interactions"]),
            ("bio_animal", "Animal anatomy and physiology",
             ["Tissues", "Musculoskeletal apparatus", "Body systems (Digestive, Respiratory, etc.)"]),
        ),
        "Chemistry": _topics(
            ("chem_macro", "Macroscopic Properties of Matter",
             ["Physical/Chemical changes", "Separation methods", "Fundamental laws"]),
            ("chem_micro", "Microscopic Properties of Matter",
             ["Atomic structure", "Lewis structures", "VSEPR theory", "Intermolecular forces"]),
            ("chem_periodic", "Periodic Trends",
             ["Groups & Periods", "Quantum numbers", "Isotopes", "Periodic properties"]),
            ("chem_reactions", "Chemical Reactions & Stoichiometry",
             ["Balancing equations", "Mole concept", "Limiting reactant", "Concentration units"]),
            ("chem_thermo_kinetics", "Thermodynamics and Kinetics",
             ["Gas laws", "Entropy & Enthalpy", "Equilibrium constant", "Reaction rate"]),
            ("chem_nomenclature", "Compounds and Solutions",
             ["IUPAC/Traditional nomenclature", "Solubility", "Metal properties"]),
            ("chem_acids_bases", "Acids and Bases",
             ["pH indicators", "Salt formation", "Neutralisation", "Buffers"]),
            ("chem_redox", "Oxidation and Reduction",
             ["Oxidation numbers", "Oxidants/Reductants", "Redox balancing"]),
            ("chem_organic", "Organic Chemistry",
             ["Carbon hybridisation", "Isomerism", "Functional groups", "Combustion"]),
            ("chem_applied", "Applied Chemistry",
             ["Experimental uncertainties", "Label reading", "Environmental issues"]),
        ),
        "Physics": _topics(
            ("phys_measurement", "Physical quantities and measurement",
             ["SI units", "Vector calculus", "Scientific notation", "Functional models"]),
            ("phys_kinematics", "Point particle kinematics",
             ["Velocity & Acceleration", "Uniform motion", "Falling motion", "Circular motion"]),
            ("phys_dynamics", "Point particle dynamics, energy and work",
             ["Second Law", "Mechanical energy", "Conservation principles", "Work & Power"]),
            ("phys_fluids_thermo", "Fluid mechanics and thermodynamics",
             ["Hydrostatics (Pascal/Archimedes)", "Bernoulli principle", "Ideal gas laws",
              "Laws of thermodynamics"]),
            ("phys_electro", "Electromagnetism principles",
             ["Coulomb law", "Electric field", "Ohm laws", "Waves (Light & Sound)"]),
        ),
    },
)

IMAT = ExamConfig(
    id="imat-prep",
    name="IMAT (International Medical Admissions Test)",
    duration_minutes=100,
    total_questions=60,
    proctored=True,
    scoring=ScoringRules(correct=1.5, incorrect=-0.4, skipped=0),
    sections=(
        ExamSection("reading", "Reading Skills & General Knowledge", 4, 10),
        ExamSection("logic", "Logical Reasoning", 5, 10),
        ExamSection("biology", "Biology", 23, 35),
        ExamSection("chemistry", "Chemistry", 15, 25),
        ExamSection("physics_maths", "Physics & Mathematics", 13, 20),
    ),
    syllabus={
        "Reading Skills & General Knowledge": _topics(
            ("reading_comp", "Reading Comprehension",
             ["Main idea extraction", "Tone and style", "Contextual meaning"]),
            ("logic_general", "General Knowledge",
             ["History of culture", "Philosophy", "International institutions", "Political systems"]),
        ),
        "Logical Reasoning": _topics(
            ("logic_arg", "Argument Analysis",
             ["Identifying conclusions", "Weakening/Strengthening arguments", "Hidden assumptions"]),
            ("logic_solve", "Problem Solving",
             ["Numerical reasoning", "Data interpretation", "Spatial reasoning"]),
        ),
        "Biology": _topics(
            ("bio_chem", "Chemistry of the Living", ["Weak interactions", "Organic molecules", "Enzymes"]),
            ("bio_cell", "Cell as Basis of Life",
             ["Cell theory", "Prokaryotic vs Eukaryotic", "Membrane structure"]),
            ("bio_genetics", "Genetics", ["Mendel laws", "Molecular genetics", "DNA structure", "Mutations"]),
            ("bio_physio", "Anatomy & Physiology",
             ["Animal tissues", "Homeostasis", "Systems and apparatuses"]),
            ("bio_energetics", "Bioenergetics",
             ["ATP", "Photosynthesis", "Glycolysis", "Aerobic respiration"]),
        ),
        "Chemistry": _topics(
            ("chem_matter", "Constitution of Matter", ["States of aggregation", "Ideal gas laws"]),
            ("chem_atom", "Structure of the Atom", ["Atomic number", "Mass number", "Electronic structure"]),
            ("chem_periodic", "Periodic System", ["Periodic properties", "Ionization potential"]),
            ("chem_bond", "Chemical Bond", ["Ionic/Covalent", "Polarity", "Electronegativity"]),
            ("chem_reactions", "Reactions & Stoichiometry", ["Atomic mass", "Mole concept", "Balancing"]),
            ("chem_acids", "Acids & Bases", ["pH concept", "Hydrolysis", "Buffers"]),
            ("chem_organic", "Organic Chemistry", ["Functional groups", "Isomerism", "Hydrocarbons"]),
        ),
        "Physics & Mathematics": _topics(
            ("phys_measurement", "Measurement", ["Fundamental quantities", "Scientific notation"]),
            ("phys_kinematics", "Kinematics", ["Velocity", "Acceleration", "Uniform motion"]),
            ("phys_dynamics", "Dynamics", ["Inertia", "Work", "Kinetic energy", "Power"]),
            ("phys_fluids", "Fluid Mechanics", ["Pressure", "Archimedes", "Bernoulli"]),
            ("phys_thermo", "Thermodynamics", ["Temperature scales", "Laws of thermodynamics"]),
            ("phys_electro", "Electromagnetism", ["Coulomb law", "Capacitance", "Ohm law"]),
            ("math_algebra", "Algebra & Numbers", ["Rational/Real numbers", "Logarithms", "Equations"]),
            ("math_functions", "Functions", ["Graphical representation", "Exponential", "Goniometric"]),
            ("math_geometry", "Geometry", ["Polygons", "Cartesian plane", "Triangles"]),
            ("math_prob", "Probability & Statistics", ["Random events", "Frequency distributions"]),
        ),
    },
)

SAT = ExamConfig(
    id="sat-prep",
    name="SAT (Scholastic Assessment Test)",
    duration_minutes=180,
    total_questions=154,
    proctored=True,
    scoring=ScoringRules(correct=1, incorrect=0, skipped=0),
    sections=(
        ExamSection("reading_writing", "Reading & Writing", 54, 64),
        ExamSection("math", "Mathematics", 44, 70),
    ),
    syllabus={
        "Reading & Writing": _topics(
            ("craft_structure", "Craft and Structure",
             ["Words in Context", "Text Structure and Purpose", "Cross-Text Connections"]),
            ("information_ideas", "Information and Ideas",
             ["Central Ideas and Details", "Inferences", "Command of Evidence"]),
            ("standard_english", "Standard English Conventions", ["Boundaries", "Form, Structure, and Sense"]),
            ("expression_ideas", "Expression of Ideas", ["Rhetorical Synthesis", "Transitions"]),
        ),
        "Mathematics": _topics(
            ("algebra", "Algebra", ["Linear Equations", "Linear Functions", "Systems of Two Linear Equations"]),
            ("advanced_math", "Advanced Math",
             ["Equivalent Expressions", "Nonlinear Equations", "Nonlinear Functions"]),
            ("problem_solving", "Problem Solving and Data Analysis",
             ["Ratios, Rates, Proportions", "One-Variable Data", "Two-Variable Data"]),
            ("geometry_trig", "Geometry and Trigonometry",
             ["Area and Volume", "Lines, Angles, and Triangles", "Right Triangles and Trigonometry"]),
        ),
    },
)

IELTS_ACADEMIC = ExamConfig(
    id="ielts-academic",
    name="IELTS Academic",
    duration_minutes=165,
    total_questions=40,
    proctored=False,
    scoring=ScoringRules(correct=1, incorrect=0, skipped=0),
    sections=(
        ExamSection("listening", "Listening", 40, 30),
        ExamSection("reading", "Academic Reading", 40, 60),
        ExamSection("writing", "Academic Writing", 2, 60),
        ExamSection("speaking", "Speaking", 3, 15),
    ),
    syllabus={
        "Listening": _topics(
            ("social_context", "Social Context",
             ["Conversation between two people", "Everyday social context"]),
            ("monologue", "Monologue", ["Speech on everyday topics", "Public announcements"]),
            ("academic_conversation", "Academic Conversation",
             ["Discussion between multiple speakers", "Educational context"]),
            ("academic_monologue", "Academic Monologue", ["Lecture or talk", "Academic subject"]),
        ),
        "Academic Reading": _topics(
            ("reading_comp", "Reading Comprehension", ["Main ideas", "Detailed information", "Logical argument"]),
            ("scanning", "Scanning Skills", ["Specific information", "Data interpretation"]),
            ("skimming", "Skimming Skills", ["General overview", "Topic identification"]),
            ("vocabulary", "Vocabulary in Context", ["Meaning from context", "Paraphrasing", "Synonyms"]),
        ),
        "Academic Writing": _topics(
            ("task1", "Task 1 - Data Description", ["Graphs and charts", "Tables", "Diagrams", "Processes"]),
            ("task2", "Task 2 - Essay Writing",
             ["Opinion essays", "Discussion essays", "Advantage/Disadvantage", "Problem/Solution"]),
            ("coherence", "Coherence and Cohesion", ["Paragraphing", "Linking words", "Referencing"]),
            ("lexical", "Lexical Resource", ["Vocabulary range", "Collocation", "Word formation"]),
            ("grammar", "Grammatical Range", ["Complex sentences", "Tense usage", "Accuracy"]),
        ),
        "Speaking": _topics(
            ("part1", "Part 1 - Introduction", ["Personal information", "Familiar topics", "General questions"]),
            ("part2", "Part 2 - Long Turn", ["Describe a topic", "2-minute speech", "Cue card"]),
            ("part3", "Part 3 - Discussion", ["Abstract ideas", "In-depth discussion", "Topic expansion"]),
            ("fluency", "Fluency and Coherence", ["Speaking rate", "Pauses", "Connectives"]),
            ("pronunciation", "Pronunciation", ["Individual sounds", "Word stress", "Intonation"]),
        ),
    },
)

EXAMS: Dict[str, ExamConfig] = {
    exam.id: exam for exam in (CENT_S, IMAT, SAT, IELTS_ACADEMIC)
}


def get_exam(exam_id: str) -> ExamConfig:
    """Look up an exam by id, raising ValueError for unknown ids."""
    exam = EXAMS.get(exam_id)
    if exam is None:
        raise ValueError(f"Unknown exam: {exam_id}")
    return exam


# Free-form section names seen in session question feeds, mapped onto the
# official section they belong to. Checked in order, case-insensitive.
SECTION_ALIASES: Dict[str, Tuple[Tuple[str, str], ...]] = {
    "imat-prep": (
        (r"math|physics", "Physics & Mathematics"),
        (r"biology", "Biology"),
        (r"chemistry", "Chemistry"),
        (r"logic|reasoning", "Logical Reasoning"),
        (r"reading|knowledge", "Reading Skills & General Knowledge"),
    ),
    "cent-s-prep": (
        (r"math", "Mathematics"),
        (r"logic|reading|reasoning", "Reasoning on texts and data"),
    ),
}

# Exams whose mock sessions run outside the multiple-choice engine
SKILLS_FLOW_EXAMS = ("ielts-academic",)

# ---------------------------------------------------------------------------
# Proctoring
# ---------------------------------------------------------------------------
MAX_WARNINGS = 3                 # violations before automatic disqualification
DEVTOOLS_SIZE_THRESHOLD = 160    # px gap between outer and inner window size

# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------
SECTION_WARNING_SECONDS = 300    # one-time warning when a section has 5 min left
LOW_TIME_SECONDS = 300           # timer turns red below this

# ---------------------------------------------------------------------------
# Practice
# ---------------------------------------------------------------------------
DAILY_FREE_LIMIT = 15            # questions per subject per day on the explorer plan
PRACTICE_MIN_QUESTIONS = 1
PRACTICE_MAX_QUESTIONS = 60
PRACTICE_DEFAULT_QUESTIONS = 10
PRACTICE_DEFAULT_MINUTES = 30
DIFFICULTIES = ("easy", "medium", "hard", "mixed")
ALL_TOPICS = "all"
FULL_SIMULATION_SUBJECT = "All Subjects"
SESSION_MOCK_SUBJECT = "International Mock"

# ---------------------------------------------------------------------------
# Question generation
# ---------------------------------------------------------------------------
RATE_LIMIT_SECONDS = 1.0     # min delay between API calls
MAX_RETRIES = 3              # retries on transient API errors
MAX_TOKENS = 8192            # max tokens for question generation response
QUESTIONS_PER_BATCH = 10
OPTION_LETTERS = ("A", "B", "C", "D", "E")

# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------
WEAK_ACCURACY = 60.0
STRONG_ACCURACY = 85.0
MIN_QUESTIONS_FOR_RATING = 5
MIN_QUESTIONS_FOR_STRONG = 10
