import logging
import pathlib

from .affine import AffineTransform2D, SharedAffine
from .align import aligner, palom_wrapper
from .align.downsample import select_downsample
from .annotations import read_geojson, write_geojson
from .models import (
    AlignmentResult,
    AlignmentStrategy,
    AlignmentTask,
    ImageEntry,
    RegistrationKind,
)

log = logging.getLogger(__name__)


class LocalAligner:
    """
    Aligns two local images, writes QC plots, and maps the base image's
    annotations onto the selected image.
    """

    def __init__(self, task: AlignmentTask, transform=None):
        self.task = task
        self.transform = transform or SharedAffine(
            AffineTransform2D.parse(task.initial_transform)
        )
        self.base = None
        self.selected = None
        self.outcome = None

    def run(self) -> AlignmentResult:
        """Executes the entire alignment workflow."""
        task = self.task
        strategy = AlignmentStrategy.parse(task.strategy)
        kind = RegistrationKind.parse(task.registration)

        log.info("Reading and preparing images...")
        self._prepare_entries()
        initial = self.transform.get()

        log.info(f"Performing {strategy.value} alignment ({kind.value})...")
        self.outcome = aligner.align(
            self.base,
            self.selected,
            self.transform,
            strategy,
            kind,
            task.pixel_size,
        )

        qc_paths = []
        if task.qc_out_dir is not None:
            log.info("Generating QC plots...")
            qc_paths = self._generate_qc_plots(initial)

        n_propagated = None
        if task.propagate_out is not None and self.base.annotations:
            propagated = aligner.propagate_annotations(
                self.base.annotations, self.outcome.transform
            )
            if task.dry_run:
                log.info(f"Dry run: {len(propagated)} annotations not written")
            else:
                n_propagated = write_geojson(task.propagate_out, propagated)

        return AlignmentResult(
            base_path=task.base_path,
            selected_path=task.selected_path,
            success=True,
            message="Completed successfully.",
            transform=self.outcome.transform,
            score=self.outcome.score,
            qc_plot_path=str(qc_paths[0]) if qc_paths else None,
            annotations_propagated=n_propagated,
            row_num=task.row_num,
        )

    def _prepare_entries(self):
        task = self.task
        self.base = ImageEntry(
            source=palom_wrapper.open_image(
                task.base_path, task.channel, task.base_pixel_size
            ),
            annotations=self._read_annotations(task.base_annotations),
            name=task.base_path,
        )
        self.selected = ImageEntry(
            source=palom_wrapper.open_image(
                task.selected_path, task.channel, task.selected_pixel_size
            ),
            annotations=self._read_annotations(task.selected_annotations),
            name=task.selected_path,
        )

    @staticmethod
    def _read_annotations(path):
        if path is None:
            return []
        return read_geojson(path)

    def _generate_qc_plots(self, initial):
        """Renders the selected image over the base before and after alignment."""
        source = self.base.source
        downsample = select_downsample(
            source.pixel_dimensions()[0],
            source.physical_pixel_size(),
            self.task.pixel_size,
            str(self.base),
        )
        img_base = aligner.read_full_image(self.base, downsample)
        img_selected = aligner.read_full_image(self.selected, downsample)

        plotter = aligner.QcPlotter(
            self.task.qc_out_dir,
            name_base=pathlib.Path(self.task.base_path).name,
            name_selected=pathlib.Path(self.task.selected_path).name,
        )
        plotter.plot_alignment(
            img_base, img_selected, initial, self.outcome.transform, downsample
        )
        paths = plotter.save_figures()
        log.info(f"QC plots saved in '{self.task.qc_out_dir}'.")
        return paths
