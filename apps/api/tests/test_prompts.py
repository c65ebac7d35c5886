from services.prompts import (
    MAX_RESUME_TEXT_CHARS,
    PROMPT_BUILDERS,
    build_cover_letter_prompt,
    build_job_analysis_prompt,
    build_resume_analysis_prompt,
    build_resume_prompt,
)


RESUME_FIELDS = {
    "name": "Jane Doe",
    "job_title": "Backend Engineer",
    "experience": "Five years building payment APIs at Acme.",
    "skills": ["Python", " FastAPI ", ""],
    "education": "BSc Computer Science, 2018",
}


def test_resume_prompt_without_optional_fields_omits_their_labels():
    spec = build_resume_prompt(RESUME_FIELDS)

    assert "tone" not in spec.prompt.lower()
    assert "Target Company" not in spec.prompt
    assert "CERTIFICATIONS" not in spec.prompt
    assert "None" not in spec.prompt
    assert "- Skills: Python, FastAPI" in spec.prompt
    assert "JANE DOE" in spec.prompt
    assert "Write a strong 2-3 sentence summary" in spec.prompt
    assert spec.max_tokens == 900
    assert "no markdown" in spec.system_prompt


def test_resume_prompt_includes_personalization_when_given():
    spec = build_resume_prompt(
        {
            **RESUME_FIELDS,
            "tone": "confident",
            "target_company": "Globex",
            "certifications": "AWS SAA",
            "custom_instructions": "Emphasize leadership",
        }
    )

    assert "- Tone / Style: confident" in spec.prompt
    assert "- Write in a confident tone throughout" in spec.prompt
    assert "- Target Company: Globex" in spec.prompt
    assert "(SUMMARY, EXPERIENCE, SKILLS, EDUCATION, CERTIFICATIONS)" in spec.prompt
    assert "ADDITIONAL INSTRUCTIONS FROM CANDIDATE:\nEmphasize leadership" in spec.prompt


def test_cover_letter_defaults_hiring_manager_and_voice():
    fields = {
        "name": "Jane Doe",
        "job_title": "Backend Engineer",
        "company": "Globex",
        "experience": "Five years building payment APIs.",
        "skills": "Python, SQL",
    }

    spec = build_cover_letter_prompt(fields)
    assert 'Address to "Hiring Manager"' in spec.prompt
    assert "tone" not in spec.prompt.lower()
    assert "APPLYING FOR: Backend Engineer at Globex" in spec.prompt
    assert spec.max_tokens == 700

    personalized = build_cover_letter_prompt({**fields, "hiring_manager": "Ms. Smith", "tone": "warm"})
    assert 'Address to "Ms. Smith"' in personalized.prompt
    assert "- Write in a warm tone" in personalized.prompt


def test_job_analysis_adapts_sections_to_supplied_context():
    description = "We are hiring a data engineer to build streaming pipelines with Kafka and Spark."

    bare = build_job_analysis_prompt({"job_description": description})
    assert "CANDIDATE SKILLS" not in bare.prompt
    assert "EXPERIENCE FIT" not in bare.prompt
    assert description in bare.prompt

    tailored = build_job_analysis_prompt(
        {"job_description": description, "skills": ["Kafka"], "target_role": "Data Engineer", "experience_level": "Senior"}
    )
    assert "CANDIDATE SKILLS: Kafka" in tailored.prompt
    assert "tailored for the Data Engineer position" in tailored.prompt
    assert "Senior-level experience" in tailored.prompt


def test_resume_analysis_truncates_long_resume_text():
    spec = build_resume_analysis_prompt(
        {"resume_text": "x" * (MAX_RESUME_TEXT_CHARS + 500), "job_description": "Python developer role"}
    )

    assert "x" * MAX_RESUME_TEXT_CHARS + "\n...(truncated)" in spec.prompt
    assert "x" * (MAX_RESUME_TEXT_CHARS + 1) not in spec.prompt
    assert "MATCH SCORE" in spec.prompt


def test_builders_are_registered_per_generation_type():
    assert set(PROMPT_BUILDERS) == {"RESUME", "COVER_LETTER", "JOB_ANALYSIS", "RESUME_ANALYSIS"}
    assert PROMPT_BUILDERS["RESUME"](RESUME_FIELDS) == build_resume_prompt(RESUME_FIELDS)
