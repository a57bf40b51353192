"""
SQLite schema for JOBSMITH storage.

Three groups of tables share one database file:
- Artifacts: generated content, one row per generation (versioned by created_at)
- Company research: durable company info plus a volatile research cache row
- Profile data: read-only inputs for context gathering (profile, jobs, history)

JSON-valued columns are stored as TEXT.
"""

# Kinds accepted by ai_artifacts.kind; experience tailoring is stored as "resume"
ARTIFACT_KINDS = ("resume", "cover_letter", "skills_optimization", "company_research", "salary_research")

# Tables context gathering may read with list_rows()
PROFILE_TABLES = ("employment", "education", "skills", "projects", "certifications")


def artifact_schema() -> list[str]:
    kinds = ", ".join(f"'{kind}'" for kind in ARTIFACT_KINDS)
    return [
        f"""
        CREATE TABLE IF NOT EXISTS ai_artifacts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            job_id INTEGER,
            kind TEXT NOT NULL CHECK (kind IN ({kinds})),
            title TEXT,
            prompt TEXT,
            model TEXT,
            content TEXT NOT NULL,
            metadata TEXT NOT NULL DEFAULT '{{}}',
            created_at TEXT NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_artifacts_user_job ON ai_artifacts(user_id, job_id, kind)",
    ]


def research_schema(size_labels: list[str]) -> list[str]:
    """Company tables; the size column only accepts the given bucket labels (or NULL)."""
    sizes = ", ".join(f"'{label}'" for label in size_labels)
    return [
        f"""
        CREATE TABLE IF NOT EXISTS companies (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            normalized_name TEXT NOT NULL UNIQUE,
            industry TEXT,
            size TEXT CHECK (size IS NULL OR size IN ({sizes})),
            location TEXT,
            founded INTEGER,
            website TEXT,
            description TEXT,
            mission TEXT,
            company_data TEXT NOT NULL DEFAULT '{{}}',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS company_research_cache (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            company_id INTEGER NOT NULL UNIQUE REFERENCES companies(id) ON DELETE CASCADE,
            research_data TEXT NOT NULL,
            metadata TEXT NOT NULL DEFAULT '{}',
            generated_at TEXT NOT NULL,
            last_accessed_at TEXT,
            access_count INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_research_generated_at ON company_research_cache(generated_at)",
    ]


def profile_schema() -> list[str]:
    return [
        """
        CREATE TABLE IF NOT EXISTS profiles (
            user_id TEXT PRIMARY KEY,
            full_name TEXT,
            email TEXT,
            headline TEXT,
            summary TEXT,
            location TEXT,
            years_experience INTEGER
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS jobs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            job_title TEXT,
            company_name TEXT,
            job_description TEXT,
            location TEXT,
            industry TEXT,
            created_at TEXT
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS employment (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            job_title TEXT,
            company_name TEXT,
            start_date TEXT,
            end_date TEXT,
            job_description TEXT
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS education (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            institution_name TEXT,
            degree_type TEXT,
            field_of_study TEXT,
            graduation_date TEXT
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS skills (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            skill_name TEXT NOT NULL,
            skill_category TEXT,
            proficiency_level TEXT
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS projects (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            proj_name TEXT,
            role TEXT,
            tech_and_skills TEXT,
            proj_description TEXT
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS certifications (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id TEXT NOT NULL,
            name TEXT,
            issuing_org TEXT,
            date_earned TEXT
        )
        """,
    ]
