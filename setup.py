from setuptools import setup, find_packages

setup(
    name="crm-export-mapper",
    version="0.1.0",
    description="Maps nonprofit donation exports onto CRM import formats using LLM-generated column rules",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    package_data={
        "crm_mapper": [
            "config/*.yaml",
            "prompts/*/*.yaml",
        ],
    },
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "anthropic>=0.30",
        "httpx>=0.25",
        "langchain-openai>=0.1.0",
        "pydantic>=2.0",
        "python-dotenv>=1.0",
        "pyyaml>=6.0",
        "structlog>=23.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "crm-mapper=crm_mapper.cli:main",
        ],
    },
)
