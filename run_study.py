"""
Convergence study driver for stable point evaluation.

Usage:
    python run_study.py
    python run_study.py study.N_values=[8,16,32] study.x=[0.45,0.55]
    python run_study.py plot=false
"""

import logging
from pathlib import Path

import hydra
from omegaconf import DictConfig, OmegaConf

from stable_eval.convergence import compute_convergence_rates, run_convergence_study
from stable_eval.datastructures import StudyParameters

log = logging.getLogger(__name__)


def create_parameters(cfg: DictConfig) -> StudyParameters:
    study = OmegaConf.to_container(cfg.study, resolve=True)
    return StudyParameters(
        N_values=[int(n) for n in study["N_values"]],
        x=tuple(float(c) for c in study["x"]),
        quad_degree=int(study["quad_degree"]),
        quad_refinements=int(study["quad_refinements"]),
        quad_min_size=float(study["quad_min_size"]),
        r_in=float(study["cutoff"]["r_in"]),
        r_out=float(study["cutoff"]["r_out"]),
    )


@hydra.main(version_base=None, config_path="conf", config_name="config")
def main(cfg: DictConfig) -> None:
    log.info(f"Configuration:\n{OmegaConf.to_yaml(cfg)}")
    params = create_parameters(cfg)

    df = run_convergence_study(params)
    if len(df) > 1:
        for column in ("error_point_eval", "error_stable"):
            rates = compute_convergence_rates(df["h"].to_numpy(), df[column].to_numpy())
            df[f"rate_{column[6:]}"] = [float("nan"), *rates]

    output_dir = Path(hydra.utils.to_absolute_path(cfg.output_dir))
    output_dir.mkdir(parents=True, exist_ok=True)
    csv_path = output_dir / "convergence.csv"
    df.to_csv(csv_path, index=False)
    params.to_dataframe().to_csv(output_dir / "parameters.csv", index=False)
    log.info(f"\n{df.to_string(index=False)}")
    log.info(f"Saved {csv_path}")

    if cfg.plot:
        from stable_eval.plot_style import plot_convergence

        plot_convergence(df, output_dir / "convergence.pdf")


if __name__ == "__main__":
    main()
