"""Prompt builders for each generated document type.

Builders are pure: they take the validated request fields as a mapping and
return the task prompt, the system prompt and a token budget. Optional
personalization fields that are missing or blank are left out entirely.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

MAX_RESUME_TEXT_CHARS = 12000

RESUME_SYSTEM_PROMPT = (
    "You are an expert ATS resume writer with 15 years of HR experience. "
    "You write clean, professional, keyword-optimized resumes. "
    "Output plain text only, absolutely no markdown formatting."
)
COVER_LETTER_SYSTEM_PROMPT = (
    "You are an expert cover letter writer who crafts compelling, personalized "
    "cover letters that get interviews. Output plain text only."
)
JOB_ANALYSIS_SYSTEM_PROMPT = (
    "You are an expert career coach and ATS optimization specialist. "
    "Give specific, actionable advice. Output plain text only."
)
RESUME_ANALYSIS_SYSTEM_PROMPT = (
    "You are an expert technical recruiter and ATS specialist who compares resumes "
    "against job descriptions. Be candid, specific and actionable. Output plain text only."
)


@dataclass(frozen=True)
class PromptSpec:
    prompt: str
    system_prompt: str
    max_tokens: int


def _text(fields: Mapping[str, Any], key: str) -> Optional[str]:
    value = fields.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _skills(fields: Mapping[str, Any]) -> Optional[str]:
    value = fields.get("skills")
    if isinstance(value, (list, tuple)):
        items = [str(item).strip() for item in value if str(item).strip()]
        return ", ".join(items) or None
    return _text(fields, "skills")


def _join(lines: List[Optional[str]]) -> str:
    return "\n".join(line for line in lines if line is not None).strip()


def build_resume_prompt(fields: Mapping[str, Any]) -> PromptSpec:
    name = _text(fields, "name") or ""
    job_title = _text(fields, "job_title") or ""
    summary = _text(fields, "summary")
    tone = _text(fields, "tone")
    target_company = _text(fields, "target_company")
    years = _text(fields, "years_of_experience")
    certifications = _text(fields, "certifications")
    languages = _text(fields, "languages")
    custom = _text(fields, "custom_instructions")

    headers = ["SUMMARY", "EXPERIENCE", "SKILLS", "EDUCATION"]
    if certifications:
        headers.append("CERTIFICATIONS")
    if languages:
        headers.append("LANGUAGES")

    prompt = _join([
        "Create a professional, ATS-optimized resume for the following person.",
        "",
        "CANDIDATE DETAILS:",
        f"- Full Name: {name}",
        f"- Target Job Title: {job_title}",
        f"- Professional Summary Input: {summary}" if summary else None,
        f"- Work Experience: {_text(fields, 'experience') or ''}",
        f"- Skills: {_skills(fields) or ''}",
        f"- Education: {_text(fields, 'education') or ''}",
        f"- Tone / Style: {tone}" if tone else None,
        f"- Target Company: {target_company}" if target_company else None,
        f"- Years of Experience: {years}" if years else None,
        f"- Certifications: {certifications}" if certifications else None,
        f"- Languages: {languages}" if languages else None,
        "",
        f"ADDITIONAL INSTRUCTIONS FROM CANDIDATE:\n{custom}\n" if custom else None,
        "STRICT OUTPUT RULES:",
        "- Use ONLY plain text: no markdown, no asterisks, no hash symbols",
        f"- Section headers must be in ALL CAPS ({', '.join(headers)})",
        "- Use bullet points with the • character",
        "- Do NOT use placeholder text like [Company Name]",
        "- Keep it concise, professional, and ATS-friendly",
        "- Start directly with the candidate's name",
        "- Write a strong 2-3 sentence summary based on the experience" if not summary else None,
        f"- Write in a {tone} tone throughout" if tone else None,
        "",
        "OUTPUT FORMAT:",
        name.upper(),
        job_title,
        "",
        "SUMMARY",
        "Write 2-3 sentences here.",
        "",
        "EXPERIENCE",
        "Job Title | Company Name | Start Year – End Year",
        "• Achievement with measurable result",
        "• Another key responsibility or achievement",
        "",
        "SKILLS",
        "• Technical Skills: list them here",
        "• Soft Skills: list them here",
        "",
        "EDUCATION",
        "Degree | Institution | Year",
        "\nCERTIFICATIONS\n• List certifications here" if certifications else None,
        "\nLANGUAGES\n• List languages here" if languages else None,
    ])
    return PromptSpec(prompt=prompt, system_prompt=RESUME_SYSTEM_PROMPT, max_tokens=900)


def build_cover_letter_prompt(fields: Mapping[str, Any]) -> PromptSpec:
    tone = _text(fields, "tone")
    hiring_manager = _text(fields, "hiring_manager")
    achievements = _text(fields, "achievements")
    why_company = _text(fields, "why_company")
    custom = _text(fields, "custom_instructions")

    prompt = _join([
        "Write a professional cover letter for a job application.",
        "",
        f"APPLICANT: {_text(fields, 'name') or ''}",
        f"APPLYING FOR: {_text(fields, 'job_title') or ''} at {_text(fields, 'company') or ''}",
        f"EXPERIENCE: {_text(fields, 'experience') or ''}",
        f"SKILLS: {_skills(fields) or ''}",
        f"WHY THIS COMPANY: {why_company}" if why_company else None,
        f"HIRING MANAGER: {hiring_manager}" if hiring_manager else None,
        f"KEY ACHIEVEMENTS TO HIGHLIGHT: {achievements}" if achievements else None,
        "",
        f"ADDITIONAL INSTRUCTIONS:\n{custom}\n" if custom else None,
        "RULES:",
        "- 3 paragraphs: strong opening hook, experience body, confident closing",
        f"- Write in a {tone} tone" if tone else "- Keep the voice professional but personable",
        "- Plain text only, no markdown",
        f'- Address to "{hiring_manager}"' if hiring_manager else '- Address to "Hiring Manager"',
        "- End with a call to action",
    ])
    return PromptSpec(prompt=prompt, system_prompt=COVER_LETTER_SYSTEM_PROMPT, max_tokens=700)


def build_job_analysis_prompt(fields: Mapping[str, Any]) -> PromptSpec:
    skills = _skills(fields)
    target_role = _text(fields, "target_role")
    experience_level = _text(fields, "experience_level")
    industry = _text(fields, "industry")
    custom = _text(fields, "custom_instructions")

    recommendations = "• 3 specific, actionable tips to improve the resume for this role"
    if target_role:
        recommendations += f", tailored for the {target_role} position"

    prompt = _join([
        "Analyze this job description and provide a structured career coaching report.",
        "",
        "JOB DESCRIPTION:",
        _text(fields, "job_description") or "",
        "",
        f"CANDIDATE SKILLS: {skills}" if skills else None,
        f"TARGET ROLE: {target_role}" if target_role else None,
        f"EXPERIENCE LEVEL: {experience_level}" if experience_level else None,
        f"INDUSTRY: {industry}" if industry else None,
        "",
        f"ADDITIONAL ANALYSIS INSTRUCTIONS:\n{custom}\n" if custom else None,
        "Provide this exact structure:",
        "KEY REQUIREMENTS",
        "• List the top 5 must-have requirements",
        "",
        "ATS KEYWORDS",
        "• List 10 important keywords to include in the resume",
        "",
        "SKILL MATCH",
        "• Skills the candidate already has that match" if skills else "• Core skills the role depends on",
        "• Skills that are missing or need development" if skills else None,
        (
            f"\nEXPERIENCE FIT\n• How well the {experience_level}-level experience aligns with this role"
            if experience_level
            else None
        ),
        "",
        "RECOMMENDATIONS",
        recommendations,
        "",
        "Plain text only. Use • for bullets.",
    ])
    return PromptSpec(prompt=prompt, system_prompt=JOB_ANALYSIS_SYSTEM_PROMPT, max_tokens=800)


def build_resume_analysis_prompt(fields: Mapping[str, Any]) -> PromptSpec:
    resume_text = _text(fields, "resume_text") or ""
    if len(resume_text) > MAX_RESUME_TEXT_CHARS:
        resume_text = resume_text[:MAX_RESUME_TEXT_CHARS] + "\n...(truncated)"
    target_role = _text(fields, "target_role")
    experience_level = _text(fields, "experience_level")
    industry = _text(fields, "industry")
    custom = _text(fields, "custom_instructions")

    prompt = _join([
        "Compare the candidate's resume against the job description and report how well they match.",
        "",
        "RESUME:",
        resume_text,
        "",
        "JOB DESCRIPTION:",
        _text(fields, "job_description") or "",
        "",
        f"TARGET ROLE: {target_role}" if target_role else None,
        f"EXPERIENCE LEVEL: {experience_level}" if experience_level else None,
        f"INDUSTRY: {industry}" if industry else None,
        "",
        f"ADDITIONAL ANALYSIS INSTRUCTIONS:\n{custom}\n" if custom else None,
        "Provide this exact structure:",
        "MATCH SCORE",
        "• A score from 0 to 100 followed by a one-sentence justification",
        "",
        "STRENGTHS",
        "• Up to 5 ways the resume already fits the role",
        "",
        "GAPS",
        "• Up to 5 requirements the resume does not demonstrate",
        "",
        "MISSING ATS KEYWORDS",
        "• Keywords from the job description that the resume lacks",
        "",
        "RECOMMENDATIONS",
        "• 3 concrete edits to make before applying",
        "",
        "Plain text only. Use • for bullets. Do not rewrite the whole resume.",
    ])
    return PromptSpec(prompt=prompt, system_prompt=RESUME_ANALYSIS_SYSTEM_PROMPT, max_tokens=1000)


PROMPT_BUILDERS: Dict[str, Callable[[Mapping[str, Any]], PromptSpec]] = {
    "RESUME": build_resume_prompt,
    "COVER_LETTER": build_cover_letter_prompt,
    "JOB_ANALYSIS": build_job_analysis_prompt,
    "RESUME_ANALYSIS": build_resume_analysis_prompt,
}
